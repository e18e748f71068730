"""
Runtime configuration for the Shop API.

Values are read from the environment once and handed to create_app() so nothing
else in the code base reads os.environ directly.
"""

import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field

DEV_JWT_SECRET = "change-me-in-production"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: str = Field("mongodb://localhost:27017", description="MongoDB connection string")
    database_name: str = Field("shop", description="MongoDB database name")
    jwt_secret: str = Field(DEV_JWT_SECRET, description="HS256 signing key for session tokens")
    jwt_expires_days: int = Field(30, ge=1, description="Session token lifetime")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    shipping_cost: float = Field(5.99, ge=0, description="Flat shipping fee used when totals are recomputed")
    tax_rate: float = Field(0.08, ge=0, description="Tax rate used when totals are recomputed")
    enforce_status_transitions: bool = False
    recompute_order_totals: bool = False
    port: int = 8000
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            "database_url": os.getenv("DATABASE_URL"),
            "database_name": os.getenv("DATABASE_NAME"),
            "jwt_secret": os.getenv("JWT_SECRET"),
            "jwt_expires_days": os.getenv("JWT_EXPIRES_DAYS"),
            "shipping_cost": os.getenv("SHIPPING_COST"),
            "tax_rate": os.getenv("TAX_RATE"),
            "port": os.getenv("PORT"),
        }
        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        values = {k: v for k, v in values.items() if v}
        return cls(
            **values,
            enforce_status_transitions=_env_bool("ENFORCE_STATUS_TRANSITIONS"),
            recompute_order_totals=_env_bool("RECOMPUTE_ORDER_TOTALS"),
            debug=_env_bool("DEBUG"),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
