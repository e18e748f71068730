"""Admin user management."""

from typing import List

import errors
from auth import HIDDEN_FIELDS, public_user
from database import NEWEST_FIRST, get_db, now, oid
from logger import get_logger

_logger = get_logger(__name__)


def list_users() -> List[dict]:
    cursor = get_db()["user"].find({}, HIDDEN_FIELDS).sort(NEWEST_FIRST)
    return [public_user(u) for u in cursor]


def get_user(user_id: str) -> dict:
    doc = get_db()["user"].find_one({"_id": oid(user_id)}, HIDDEN_FIELDS)
    if not doc:
        raise errors.NotFound("User not found")
    return public_user(doc)


def delete_user(user_id: str, acting_admin_id: str) -> None:
    """Delete a user and their cart. Orders stay as history."""
    if user_id == acting_admin_id:
        raise errors.ValidationError("Admins cannot delete their own account")

    db = get_db()
    result = db["user"].delete_one({"_id": oid(user_id)})
    if result.deleted_count == 0:
        raise errors.NotFound("User not found")
    db["cart"].delete_one({"user_id": user_id})
    _logger.info(f"User {user_id} deleted by admin {acting_admin_id}")


def update_role(user_id: str, role: str, acting_admin_id: str) -> dict:
    if user_id == acting_admin_id and role != "admin":
        raise errors.ValidationError("Admins cannot remove their own admin role")

    users = get_db()["user"]
    result = users.update_one({"_id": oid(user_id)}, {"$set": {"role": role, "updated_at": now()}})
    if result.matched_count == 0:
        raise errors.NotFound("User not found")
    _logger.info(f"User {user_id} role set to {role} by admin {acting_admin_id}")
    return get_user(user_id)
