"""
Categories and products.

Product listings resolve their category inline so a client never needs a second
request to show the category name.
"""

from typing import Dict, Iterable, List

from pymongo.errors import DuplicateKeyError

import errors
from database import NEWEST_FIRST, create_document, get_db, get_documents, now, oid, serialize
from logger import get_logger
from schemas import Category, CategoryRequest, Product, ProductRequest

_logger = get_logger(__name__)

CATEGORY_FIELDS = {"name": 1, "description": 1}


# ---------------------------
# Categories
# ---------------------------


def list_categories() -> List[dict]:
    return [serialize(c) for c in get_documents("category", sort=NEWEST_FIRST)]


def _ensure_category_name_free(name: str, exclude_id=None) -> None:
    query = {"name": name}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if get_db()["category"].find_one(query, {"_id": 1}):
        raise errors.Conflict(f"Category '{name}' already exists")


def create_category(payload: CategoryRequest) -> dict:
    category = Category(name=payload.name.strip(), description=payload.description.strip())
    _ensure_category_name_free(category.name)
    try:
        category_id = create_document("category", category)
    except DuplicateKeyError:
        raise errors.Conflict(f"Category '{category.name}' already exists")
    _logger.info(f"Category {category_id} '{category.name}' created")
    return serialize(get_db()["category"].find_one({"_id": oid(category_id)}))


def update_category(category_id: str, payload: CategoryRequest) -> dict:
    categories = get_db()["category"]
    _id = oid(category_id)
    if not categories.find_one({"_id": _id}, {"_id": 1}):
        raise errors.NotFound("Category not found")

    category = Category(name=payload.name.strip(), description=payload.description.strip())
    _ensure_category_name_free(category.name, exclude_id=_id)
    try:
        categories.update_one(
            {"_id": _id}, {"$set": {**category.model_dump(), "updated_at": now()}}
        )
    except DuplicateKeyError:
        raise errors.Conflict(f"Category '{category.name}' already exists")
    return serialize(categories.find_one({"_id": _id}))


def delete_category(category_id: str) -> None:
    """Delete a category; refused while any product still references it."""
    _id = oid(category_id)
    db = get_db()
    if not db["category"].find_one({"_id": _id}, {"_id": 1}):
        raise errors.NotFound("Category not found")

    in_use = db["product"].count_documents({"category_id": str(_id)})
    if in_use:
        raise errors.Conflict(
            f"Category is still used by {in_use} product(s); reassign or delete them first"
        )
    db["category"].delete_one({"_id": _id})
    _logger.info(f"Category {category_id} deleted")


# ---------------------------
# Products
# ---------------------------


def ensure_product_image(doc: dict) -> None:
    """Last guard before a product write: image.public_id and image.url must both be set."""
    image = doc.get("image") or {}
    if not image.get("public_id") or not image.get("url"):
        raise errors.ValidationError("Product image public_id and url are required")


def _resolve_categories(products: Iterable[dict]) -> List[dict]:
    products = list(products)
    ids = {p.get("category_id") for p in products if p.get("category_id")}
    by_id: Dict[str, dict] = {}
    if ids:
        wanted = [oid(i) for i in ids]
        for c in get_db()["category"].find({"_id": {"$in": wanted}}, CATEGORY_FIELDS):
            by_id[str(c["_id"])] = serialize(c)

    out = []
    for p in products:
        item = serialize(p)
        item["category"] = by_id.get(p.get("category_id"))
        out.append(item)
    return out


def _require_category(category_id: str) -> str:
    if not get_db()["category"].find_one({"_id": oid(category_id)}, {"_id": 1}):
        raise errors.ValidationError(f"No category found with id {category_id}")
    return category_id


def list_products() -> List[dict]:
    return _resolve_categories(get_documents("product", sort=NEWEST_FIRST))


def get_product(product_id: str) -> dict:
    doc = get_db()["product"].find_one({"_id": oid(product_id)})
    if not doc:
        raise errors.NotFound("Product not found")
    return _resolve_categories([doc])[0]


def create_product(payload: ProductRequest) -> dict:
    _require_category(payload.category_id)
    product = Product(**payload.model_dump())
    doc = product.model_dump()
    ensure_product_image(doc)

    product_id = create_document("product", doc)
    _logger.info(f"Product {product_id} '{product.name}' created")
    return get_product(product_id)


def update_product(product_id: str, payload: ProductRequest) -> dict:
    products = get_db()["product"]
    _id = oid(product_id)
    if not products.find_one({"_id": _id}, {"_id": 1}):
        raise errors.NotFound("Product not found")

    _require_category(payload.category_id)
    doc = Product(**payload.model_dump()).model_dump()
    ensure_product_image(doc)
    products.update_one({"_id": _id}, {"$set": {**doc, "updated_at": now()}})
    return get_product(product_id)


def delete_product(product_id: str) -> None:
    result = get_db()["product"].delete_one({"_id": oid(product_id)})
    if result.deleted_count == 0:
        raise errors.NotFound("Product not found")
    _logger.info(f"Product {product_id} deleted")
