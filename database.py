"""
MongoDB access shared by every service module.

`db` stays None until connect() (or use_database() in tests) installs one;
services always go through get_db() so a swapped database is picked up.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import errors
from logger import get_logger

_logger = get_logger(__name__)

client: Optional[MongoClient] = None
db = None


def connect(settings):
    """Open the MongoDB client described by settings and ensure indexes."""
    global client, db
    client = MongoClient(settings.database_url)
    db = client[settings.database_name]
    _logger.info(f"Connected to database '{settings.database_name}'")
    ensure_indexes(db)
    return db


def use_database(database):
    """Install an already-built database handle; returns the previous one."""
    global db
    previous, db = db, database
    return previous


def close():
    global client, db
    if client is not None:
        client.close()
    client = None
    db = None


def get_db():
    if db is None:
        raise errors.ServerError(
            "Database not available. Check DATABASE_URL and DATABASE_NAME environment variables."
        )
    return db


def ensure_indexes(database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["category"].create_index([("name", ASCENDING)], unique=True)
    database["cart"].create_index([("user_id", ASCENDING)], unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", -1)])
    database["product"].create_index([("category_id", ASCENDING)])


def now() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: Union[str, ObjectId]) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except Exception:
        raise errors.ValidationError("Invalid id")


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    stamp = now()
    data_dict.setdefault("created_at", stamp)
    data_dict["updated_at"] = stamp

    result = get_db()[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
) -> List[dict]:
    cursor = get_db()[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def serialize(doc):
    """Make a Mongo document JSON-ready: `_id` becomes `id`, ObjectIds become str."""
    if doc is None:
        return None
    if isinstance(doc, list):
        return [serialize(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        return doc
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        else:
            out[key] = serialize(value)
    return out
