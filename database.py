"""
Database Helper Functions

MongoDB connection and the small set of helpers every collection module uses.
Each Pydantic model in schemas.py corresponds to one collection whose name is
the lowercase class name.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar, Union

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import AutoReconnect, NetworkTimeout

import config
from errors import DatabaseUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def get_db():
    """FastAPI dependency returning the configured database."""
    if db is None:
        raise DatabaseUnavailableError()
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive datetimes unless the client is tz_aware
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def parse_object_id(value) -> Optional[ObjectId]:
    """Return an ObjectId for ``value`` or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.get("_id")
    if isinstance(_id, ObjectId):
        doc["id"] = str(_id)
        del doc["_id"]
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = as_utc(v).isoformat()
        elif isinstance(v, list):
            doc[k] = [serialize_doc(i) if isinstance(i, dict) else i for i in v]
    return doc


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a single document with timestamps and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database, collection_name: str, filter_dict: dict = None, limit: int = None, sort=None):
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def with_retry(operation: Callable[[], T], attempts: int = None, label: str = "write") -> T:
    """Run ``operation``, retrying transient connection errors a bounded number of times."""
    attempts = attempts or config.ORDER_WRITE_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except (AutoReconnect, NetworkTimeout) as e:
            if attempt == attempts:
                raise
            logger.warning("%s failed (attempt %d/%d): %s", label, attempt, attempts, e)
            time.sleep(0.05 * attempt)


def ensure_indexes(database) -> None:
    """Create the indexes the storefront's invariants rely on."""
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["cart"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
    database["wishlist"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True)
    database["order"].create_index([("order_number", ASCENDING)], unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("idempotency_key", ASCENDING)], unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["notification"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["review"].create_index([("product_id", ASCENDING)])
