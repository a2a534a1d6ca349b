"""
MongoDB helpers

Thin wrappers around pymongo used by the routes. Every helper takes the
database handle explicitly so the application (and the tests) decide which
database is used.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)

OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")
NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


class DatabaseUnavailable(PyMongoError):
    """Raised when no database has been configured."""


class InvalidObjectId(ValueError):
    pass


def connect(url: Optional[str], name: Optional[str]) -> Optional[Database]:
    if not url or not name:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, database unavailable")
        return None
    client = MongoClient(url)
    return client[name]


def _require(db: Optional[Database]) -> Database:
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return db


def parse_object_id(value: str) -> ObjectId:
    """Return an ObjectId for a 24 hex character string, otherwise raise InvalidObjectId."""
    if not isinstance(value, str) or not OBJECT_ID_RE.match(value):
        raise InvalidObjectId(value)
    return ObjectId(value)


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    out = {}
    for key, value in doc.items():
        out[key] = str(value) if isinstance(value, ObjectId) else value
    return out


def create_document(db: Optional[Database], collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with createdAt/updatedAt and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict["createdAt"] = now
    data_dict["updatedAt"] = now
    result = _require(db)[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    db: Optional[Database],
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = _require(db)[collection_name].find(filter_dict or {}).sort(NEWEST_FIRST)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(db: Optional[Database], collection_name: str, doc_id: ObjectId) -> Optional[dict]:
    return _require(db)[collection_name].find_one({"_id": doc_id})


def find_document(db: Optional[Database], collection_name: str, filter_dict: dict) -> Optional[dict]:
    return _require(db)[collection_name].find_one(filter_dict)


def update_document(
    db: Optional[Database], collection_name: str, doc_id: ObjectId, changes: dict
) -> Optional[dict]:
    """Apply $set changes and return the updated document, or None if it does not exist."""
    changes = dict(changes)
    changes["updatedAt"] = datetime.now(timezone.utc)
    return _require(db)[collection_name].find_one_and_update(
        {"_id": doc_id},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )


def delete_document(db: Optional[Database], collection_name: str, doc_id: ObjectId) -> bool:
    result = _require(db)[collection_name].delete_one({"_id": doc_id})
    return result.deleted_count == 1


def ensure_indexes(db: Optional[Database]) -> None:
    if db is None:
        return
    try:
        db["booking"].create_index([("ticketNumber", ASCENDING)], unique=True)
    except PyMongoError:
        # Existing duplicate tickets prevent the unique index; the issuing
        # check in tickets.py still applies.
        logger.warning("Could not create unique index on booking.ticketNumber", exc_info=True)
