"""
Document store access.

Collections are named after the lowercase schema class (Shop -> "shop").
Engine functions take the database handle as their first argument so the
HTTP layer can inject it through `get_db`.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId as BsonInvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

import settings
from errors import InvalidId, StoreUnavailable

logger = structlog.get_logger(__name__)

SHOPS = "shop"
PRODUCTS = "product"
RATINGS = "rating"

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.DATABASE_URL and settings.DATABASE_NAME:
    # MongoClient connects lazily; nothing touches the network here
    client = MongoClient(settings.DATABASE_URL)
    db = client[settings.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise StoreUnavailable("Database is not configured")
    return db


def to_store_time(value: datetime) -> datetime:
    """Naive UTC at millisecond precision, which is what the store keeps."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utcnow() -> datetime:
    return to_store_time(datetime.now(timezone.utc))


def to_obj_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (BsonInvalidId, TypeError):
        raise InvalidId(f"Invalid id: {id_str}")


def sanitize(doc: Optional[Dict]) -> Optional[Dict]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into StoreUnavailable.

    DuplicateKeyError passes through untouched: it is the outcome of a
    conditional insert and the caller decides what it means.
    """
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as exc:
        logger.error("Document store call failed", operation=operation, error=str(exc))
        raise StoreUnavailable() from exc


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("created_at", now)
    data_dict.setdefault("updated_at", now)
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [sanitize(doc) for doc in cursor]


def ensure_indexes(database: Database) -> None:
    """Create the indexes the engine relies on for uniqueness and lookups."""
    with store_errors("ensure_indexes"):
        database[SHOPS].create_index([("url_slug", ASCENDING)], unique=True)
        database[SHOPS].create_index([("owner_id", ASCENDING)])
        database[PRODUCTS].create_index([("shop_id", ASCENDING)])
        database[RATINGS].create_index(
            [("product_id", ASCENDING), ("user_id", ASCENDING)], unique=True
        )
    logger.info("Document store indexes ensured", database=database.name)
