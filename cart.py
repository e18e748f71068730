"""
One cart per user with quantity-merge semantics.

Writes are single conditional updates on the cart document rather than
read-modify-write, so two concurrent adds of the same product both count.
"""

from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import errors
from database import get_db, now, oid, serialize
from logger import get_logger

_logger = get_logger(__name__)

PRODUCT_FIELDS = {"name": 1, "price": 1, "image": 1, "description": 1}


def _item_oid(item_id: str) -> Optional[ObjectId]:
    try:
        return oid(item_id)
    except errors.ValidationError:
        return None


def _hydrate(cart: dict) -> dict:
    """Resolve every line item's product and add the running total."""
    items = cart.get("items", [])
    wanted = [oid(i["product_id"]) for i in items if ObjectId.is_valid(i.get("product_id", ""))]
    products = {}
    if wanted:
        for p in get_db()["product"].find({"_id": {"$in": wanted}}, PRODUCT_FIELDS):
            products[str(p["_id"])] = serialize(p)

    out = serialize(cart)
    total = 0.0
    for item in out["items"]:
        product = products.get(item["product_id"])
        item["product"] = product
        if product:
            total += product["price"] * item["quantity"]
    out["total"] = round(total, 2)
    out["item_count"] = sum(i["quantity"] for i in out["items"])
    return out


def _get_or_create_doc(user_id: str) -> dict:
    carts = get_db()["cart"]
    stamp = now()
    try:
        cart = carts.find_one_and_update(
            {"user_id": user_id},
            {"$setOnInsert": {"items": [], "created_at": stamp, "updated_at": stamp}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        # lost the upsert race; the other request created it
        cart = carts.find_one({"user_id": user_id})
        if cart is None:
            raise errors.ServerError("Could not create cart, please retry")
    return cart


def get_or_create(user_id: str) -> dict:
    return _hydrate(_get_or_create_doc(user_id))


def add_item(user_id: str, product_id: str, quantity: int = 1) -> dict:
    if quantity < 1:
        raise errors.ValidationError("Quantity must be at least 1")
    if not get_db()["product"].find_one({"_id": oid(product_id)}, {"_id": 1}):
        raise errors.NotFound(f"No product found with id {product_id}")

    carts = get_db()["cart"]
    _get_or_create_doc(user_id)

    # Increment an existing line, else append one; a concurrent append between
    # the two updates makes the second miss, so go round once more.
    for _ in range(2):
        result = carts.update_one(
            {"user_id": user_id, "items.product_id": product_id},
            {"$inc": {"items.$.quantity": quantity}, "$set": {"updated_at": now()}},
        )
        if result.matched_count:
            break
        result = carts.update_one(
            {"user_id": user_id, "items.product_id": {"$ne": product_id}},
            {
                "$push": {"items": {"_id": ObjectId(), "product_id": product_id, "quantity": quantity}},
                "$set": {"updated_at": now()},
            },
        )
        if result.matched_count:
            break
    else:
        raise errors.ServerError("Could not update cart, please retry")

    return _hydrate(carts.find_one({"user_id": user_id}))


def update_item_quantity(user_id: str, item_id: str, quantity: int) -> dict:
    """Set (not add to) the quantity of one line item."""
    if quantity is None or quantity < 1:
        raise errors.ValidationError("Quantity must be at least 1")

    carts = get_db()["cart"]
    item_oid = _item_oid(item_id)
    result = None
    if item_oid is not None:
        result = carts.update_one(
            {"user_id": user_id, "items._id": item_oid},
            {"$set": {"items.$.quantity": quantity, "updated_at": now()}},
        )
    if result is None or result.matched_count == 0:
        raise errors.NotFound("Item not found in cart")

    return _hydrate(carts.find_one({"user_id": user_id}))


def remove_item(user_id: str, item_id: str) -> dict:
    """Remove a line item by its own id. Removing an absent item is a no-op."""
    cart = _get_or_create_doc(user_id)
    item_oid = _item_oid(item_id)
    if item_oid is not None:
        cart = get_db()["cart"].find_one_and_update(
            {"user_id": user_id},
            {"$pull": {"items": {"_id": item_oid}}, "$set": {"updated_at": now()}},
            return_document=ReturnDocument.AFTER,
        )
    return _hydrate(cart)


def clear(user_id: str) -> dict:
    _get_or_create_doc(user_id)
    cart = get_db()["cart"].find_one_and_update(
        {"user_id": user_id},
        {"$set": {"items": [], "updated_at": now()}},
        return_document=ReturnDocument.AFTER,
    )
    _logger.debug(f"Cart cleared for user {user_id}")
    return _hydrate(cart)
