"""
Signup, login and self-service profile operations.
"""

from typing import Tuple

from pymongo.errors import DuplicateKeyError

import errors
import security
from database import create_document, get_db, now, oid, serialize
from logger import get_logger
from schemas import LoginRequest, ProfileUpdateRequest, SignupRequest, User
from settings import Settings

_logger = get_logger(__name__)

# Never sent to clients
HIDDEN_FIELDS = {"password_hash": 0}


def public_user(doc: dict) -> dict:
    user = serialize(doc)
    user.pop("password_hash", None)
    return user


def signup(payload: SignupRequest, settings: Settings) -> Tuple[str, dict]:
    """Create a user and return (token, public projection)."""
    users = get_db()["user"]
    if users.find_one({"email": payload.email}, {"_id": 1}):
        raise errors.DuplicateIdentity("User already exists")
    if not payload.image.public_id or not payload.image.url:
        raise errors.ValidationError("Image public_id and url are required")

    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=security.hash_password(payload.password),
        address=payload.address,
        image=payload.image,
        role="user",
    )
    try:
        user_id = create_document("user", user)
    except DuplicateKeyError:
        raise errors.DuplicateIdentity("User already exists")

    _logger.info(f"User {user_id} signed up")
    doc = users.find_one({"_id": oid(user_id)}, HIDDEN_FIELDS)
    return security.create_token(user_id, user.role, settings), public_user(doc)


def login(payload: LoginRequest, settings: Settings) -> Tuple[str, dict]:
    # Same error for unknown email and bad password
    doc = get_db()["user"].find_one({"email": payload.email})
    if not doc or not security.verify_password(payload.password, doc.get("password_hash")):
        raise errors.InvalidCredentials()

    user_id = str(doc["_id"])
    return security.create_token(user_id, doc.get("role", "user"), settings), public_user(doc)


def get_profile(user_id: str) -> dict:
    doc = get_db()["user"].find_one({"_id": oid(user_id)}, HIDDEN_FIELDS)
    if not doc:
        raise errors.NotFound("User not found")
    return public_user(doc)


def update_profile(user_id: str, payload: ProfileUpdateRequest) -> dict:
    """Update name, email, address and (only when given) image. Role and password are untouched."""
    users = get_db()["user"]
    _id = oid(user_id)
    if not users.find_one({"_id": _id}, {"_id": 1}):
        raise errors.NotFound("User not found")

    changes = payload.model_dump(include={"name", "email", "address"}, exclude_none=True)
    if payload.image is not None:
        changes["image"] = payload.image.model_dump()

    if "email" in changes:
        taken = users.find_one({"email": changes["email"], "_id": {"$ne": _id}}, {"_id": 1})
        if taken:
            raise errors.DuplicateIdentity("Email is already registered to another account")

    if changes:
        changes["updated_at"] = now()
        try:
            users.update_one({"_id": _id}, {"$set": changes})
        except DuplicateKeyError:
            raise errors.DuplicateIdentity("Email is already registered to another account")

    return public_user(users.find_one({"_id": _id}, HIDDEN_FIELDS))
