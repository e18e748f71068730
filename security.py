"""
Password hashing, session tokens and the FastAPI auth dependencies.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import errors
from database import get_db, oid
from schemas import MAX_PASSWORD_BYTES
from settings import Settings, get_settings

ALGORITHM = "HS256"

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str) -> str:
    raw = password.encode("utf-8")
    if len(raw) > MAX_PASSWORD_BYTES:
        raise errors.ValidationError(f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # malformed stored hash or an over-long password
        return False


def create_token(user_id: str, role: str, settings: Settings, issued_at: Optional[datetime] = None) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.jwt_expires_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def verify_token(token: str, settings: Settings) -> TokenClaims:
    """Decode a session token; any failure is reported as Unauthenticated."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise errors.Unauthenticated("Session expired, please log in again")
    except jwt.PyJWTError:
        raise errors.Unauthenticated("Not authorized to access this route")

    user_id = payload.get("id")
    if not user_id:
        raise errors.Unauthenticated("Not authorized to access this route")
    return TokenClaims(user_id=str(user_id), role=payload.get("role") or "user")


# Dependencies

def app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    settings: Settings = Depends(app_settings),
) -> TokenClaims:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise errors.Unauthenticated("Not authorized to access this route")
    claims = verify_token(credentials.credentials, settings)

    # The stored role wins over the one signed into the token, so demotions
    # apply immediately. A deleted account keeps only user rights.
    try:
        user_oid = oid(claims.user_id)
    except errors.ValidationError:
        raise errors.Unauthenticated("Not authorized to access this route")
    user = get_db()["user"].find_one({"_id": user_oid}, {"role": 1})
    role = user.get("role", "user") if user else "user"
    if role != claims.role:
        claims = TokenClaims(user_id=claims.user_id, role=role)
    return claims


def require_admin(claims: TokenClaims = Depends(current_user)) -> TokenClaims:
    if not claims.is_admin:
        raise errors.Forbidden(f"User role {claims.role} is not authorized to access this route")
    return claims
