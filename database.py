"""
MongoDB access.

Collections are named after the lowercase schema class (``product``,
``order``). Documents get ``created_at``/``updated_at`` stamped on insert.
"""
from datetime import datetime, timezone
from typing import Iterable

from bson import ObjectId
from pymongo import MongoClient

from config import get_settings
from errors import InternalError

_settings = get_settings()

db = None
if _settings.database_url and _settings.database_name:
    client = MongoClient(_settings.database_url)
    db = client[_settings.database_name]


def get_db():
    if db is None:
        raise InternalError("Database not configured")
    return db


def create_document(database, collection_name: str, data) -> str:
    """Insert a document (dict or pydantic model) and return its id as a string."""
    if hasattr(data, "model_dump"):
        data = data.model_dump(by_alias=True)
    doc = dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def normalize_id(value: str) -> str:
    """Canonical form of a product id; ObjectId hex is case-insensitive."""
    if ObjectId.is_valid(value):
        return value.lower()
    return value


def id_candidates(ids: Iterable[str]) -> list:
    """Match both string ids and legacy ObjectId ids in ``_id`` lookups."""
    candidates = []
    for value in ids:
        candidates.append(value)
        if ObjectId.is_valid(value):
            if normalize_id(value) != value:
                candidates.append(normalize_id(value))
            candidates.append(ObjectId(value))
    return candidates


def serialize_doc(doc: dict) -> dict:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    # convert datetimes to isoformat
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc
