"""
MongoDB access helpers.

The client is created by the app factory and kept on `app.state`; routes
receive the database through the `get_db` dependency so tests can swap in
an in-memory database.
"""

from datetime import datetime, timezone
from typing import Any, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings


def connect(settings: Settings) -> Database:
    # MongoClient connects lazily, nothing is contacted until the first query
    client = MongoClient(settings.database_url, tz_aware=True)
    return client[settings.database_name]


def get_db(request: Request) -> Database:
    db = request.app.state.db
    if db is None:
        db = connect(request.app.state.settings)
        request.app.state.db = db
    return db


def ensure_indexes(db: Database) -> None:
    db["product"].create_index([("slug", ASCENDING)], unique=True)
    db["category"].create_index([("slug", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["session"].create_index([("token", ASCENDING)], unique=True)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Return an ObjectId for `value`, or None if it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def ref_id(value: Any) -> Any:
    # references are stored as ObjectId when the client sent a valid one
    oid = to_object_id(value)
    return oid if oid is not None else value


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = now_utc()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None):
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def serialize_doc(value: Any) -> Any:
    """Make a Mongo document JSON friendly (ids to str, datetimes to isoformat)."""
    if isinstance(value, dict):
        return {k: serialize_doc(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_doc(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
