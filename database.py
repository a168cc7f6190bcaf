"""
MongoDB access helpers

`db` is the pymongo Database handle, or None when DATABASE_URL / DATABASE_NAME
are not set or the startup ping failed. Helpers look `db` up at call time so
it can be swapped out.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from errors import DatabaseUnavailableError

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
DATABASE_TIMEOUT_MS = int(os.getenv("DATABASE_TIMEOUT_MS", 5000))

_client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=DATABASE_TIMEOUT_MS)
    db = _client[DATABASE_NAME]
    logger.info(f"MongoDB client configured for database '{DATABASE_NAME}'")
else:
    logger.warning("DATABASE_URL or DATABASE_NAME not set, running without a database")


def check_connection() -> bool:
    """Ping the server once. On failure `db` is detached so requests fail fast."""
    global db
    if db is None:
        logger.warning("MongoDB not configured, skipping connection check")
        return False
    try:
        db.command("ping")
    except PyMongoError as e:
        logger.error(f"MongoDB connection failed: {e}")
        db = None
        return False
    logger.info("MongoDB is connected successfully")
    return True


def _collection(collection_name: str):
    if db is None:
        raise DatabaseUnavailableError()
    return db[collection_name]


def _object_id(document_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(document_id)
    except (InvalidId, TypeError):
        return None


def serialize_document(doc: Optional[dict]) -> Optional[dict]:
    """Make a Mongo document JSON-ready (ObjectId -> str)."""
    if doc is None:
        return None
    out = dict(doc)
    if "_id" in out:
        out["_id"] = str(out["_id"])
    return out


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping created_at/updated_at. Returns the new id."""
    collection = _collection(collection_name)
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = collection.insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str, filter_dict: Dict[str, Any] = None, limit: int = None
) -> List[dict]:
    cursor = _collection(collection_name).find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, document_id: str) -> Optional[dict]:
    collection = _collection(collection_name)
    oid = _object_id(document_id)
    if oid is None:
        return None
    return collection.find_one({"_id": oid})


def find_document(collection_name: str, filter_dict: Dict[str, Any]) -> Optional[dict]:
    return _collection(collection_name).find_one(filter_dict)


def update_document(
    collection_name: str, document_id: str, data: Dict[str, Any]
) -> Optional[dict]:
    """$set the given fields and return the document as it is after the update."""
    collection = _collection(collection_name)
    oid = _object_id(document_id)
    if oid is None:
        return None
    changes = dict(data)
    changes["updated_at"] = datetime.now(timezone.utc)
    return collection.find_one_and_update(
        {"_id": oid},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )


def delete_document(collection_name: str, document_id: str) -> Optional[dict]:
    collection = _collection(collection_name)
    oid = _object_id(document_id)
    if oid is None:
        return None
    return collection.find_one_and_delete({"_id": oid})
