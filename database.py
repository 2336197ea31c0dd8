"""
Document store access

The MongoClient is process-wide state: init_db() creates it once at startup and
close_db() tears it down on shutdown. Route handlers obtain the database
through the get_db() dependency and hand it to the service functions, which
never reach for a module global themselves.
"""

import base64
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from errors import InternalError, NotFound

logger = structlog.get_logger(__name__)

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def init_db(url: str, name: str) -> Database:
    global _client, _db
    if _db is not None:
        return _db
    _client = MongoClient(url)
    _db = _client[name]
    ensure_indexes(_db)
    logger.info("Database client initialised", database=name)
    return _db


def ensure_indexes(db: Database) -> None:
    # A user owns at most one cart
    db["cart"].create_index("user", unique=True)


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("Database client closed")
    _client = None
    _db = None


def get_db() -> Database:
    if _db is None:
        raise InternalError("Database not configured")
    return _db


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any, what: str = "Document") -> ObjectId:
    """Parse an identifier; an id that cannot exist is reported as not found."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFound(f"{what} not found")


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True)
    else:
        doc = dict(data)
    stamp = now()
    doc["created_at"] = stamp
    doc["updated_at"] = stamp
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def find_by_ids(db: Database, collection_name: str, ids: List[ObjectId]) -> Dict[ObjectId, dict]:
    """Resolve a batch of references in one round trip, keyed by _id."""
    if not ids:
        return {}
    return {doc["_id"]: doc for doc in db[collection_name].find({"_id": {"$in": list(set(ids))}})}


def serialize(value: Any) -> Any:
    """Make a stored document JSON-ready: _id becomes id, ObjectIds become strings."""
    if isinstance(value, dict):
        out = {}
        for key, item in value.items():
            out["id" if key == "_id" else key] = serialize(item)
        return out
    if isinstance(value, list):
        return [serialize(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return value
