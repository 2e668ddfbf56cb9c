"""
MongoDB access

A single client is created at import time from DATABASE_URL. Route handlers
receive the database through the `get_db` dependency so it can be swapped
out in tests.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = MongoClient(DATABASE_URL, tz_aware=True) if DATABASE_URL else None
db: Optional[Database] = client[DATABASE_NAME] if client is not None else None


def get_db() -> Database:
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # mongo hands back naive datetimes unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_object_id(value: Any) -> ObjectId:
    """Coerce a path/body id into an ObjectId, raising InvalidId when malformed."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidId(f"{value!r} is not a valid ObjectId")
    return ObjectId(value)


def serialize_doc(doc: Any) -> Any:
    if isinstance(doc, list):
        return [serialize_doc(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        return doc
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        else:
            out[k] = serialize_doc(v)
    return out


def create_document(database: Database, collection_name: str, data: Dict[str, Any]) -> ObjectId:
    now = utcnow()
    doc = dict(data)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return result.inserted_id


def ensure_indexes(database: Database) -> None:
    users = database["user"]
    users.create_index("email", unique=True, sparse=True)
    users.create_index("phone_number", unique=True, sparse=True)
    users.create_index("google_id", unique=True, sparse=True)
    users.create_index("role")
    users.create_index("tokens.token")
    users.create_index("cart.product")

    products = database["product"]
    for field in ("category", "sub_category", "sub_sub_category"):
        products.create_index(field)
    products.create_index([("created_at", DESCENDING)])
    products.create_index([("variants.price", ASCENDING)])
    products.create_index([("rating", DESCENDING)])
    products.create_index([("title", "text"), ("category", "text"), ("sub_category", "text")])

    enquiries = database["enquiry"]
    enquiries.create_index("user")
    enquiries.create_index("status")
    enquiries.create_index([("created_at", DESCENDING)])

    database["wishlist"].create_index("user", unique=True)
    database["otp"].create_index("key", unique=True)
    database["otp"].create_index("expires_at", expireAfterSeconds=0)
    logger.info("MongoDB indexes ensured on %s", database.name)
