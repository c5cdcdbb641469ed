"""
MongoDB access helpers.

Each Pydantic model in schemas.py maps to a collection named after the
lowercase class name (e.g. FacilityBooking -> "facilitybooking").
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

import config
from errors import ValidationError

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
_db: Optional[Database] = None


def get_db() -> Database:
    """Get or create the process-wide database handle."""
    global _client, _db
    if _db is None:
        _client = MongoClient(config.DATABASE_URL)
        _db = _client[config.DATABASE_NAME]
        logger.info(f"Using database '{config.DATABASE_NAME}'")
    return _db


def ensure_indexes(db: Database) -> None:
    """Create the indexes the booking rules rely on."""
    # one row per reserved slot; the unique key is what stops double-booking
    db["facilityslot"].create_index(
        [("court_number", ASCENDING), ("sport_name", ASCENDING), ("date", ASCENDING), ("time_slot", ASCENDING)],
        unique=True,
        name="uniq_court_date_sport_slot",
    )
    db["facilityslot"].create_index("booking_id")
    db["facilitybooking"].create_index([("court_number", ASCENDING), ("sport_name", ASCENDING), ("date", ASCENDING)])
    db["facilitybooking"].create_index("user_id")
    db["facility"].create_index([("court_number", ASCENDING), ("sport_name", ASCENDING)], unique=True)
    db["sessionbooking"].create_index("session_request_id", unique=True)
    db["sessionrequest"].create_index("user_id")
    db["sessionrequest"].create_index("coach_id")
    db["verificationcode"].create_index([("kind", ASCENDING), ("booking_id", ASCENDING)], unique=True)
    db["review"].create_index("coach_profile_id")
    db["coachprofile"].create_index("user_id")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(id_str: Union[str, ObjectId]) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id", {"id": str(id_str)})


def with_id(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    return doc


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]], _id: Optional[ObjectId] = None) -> str:
    """Insert a model (or plain dict) with timestamps and return the new id."""
    doc = data.model_dump(mode="json") if isinstance(data, BaseModel) else dict(data)
    stamp = now_utc()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    if _id is not None:
        doc["_id"] = _id
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_document(db: Database, collection_name: str, id_str: Union[str, ObjectId]) -> Optional[Dict[str, Any]]:
    return with_id(db[collection_name].find_one({"_id": to_object_id(id_str)}))


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [with_id(d) for d in cursor]


def update_document(db: Database, collection_name: str, id_str: Union[str, ObjectId], changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Apply a $set patch and return the updated document, or None if it does not exist."""
    doc = db[collection_name].find_one_and_update(
        {"_id": to_object_id(id_str)},
        {"$set": {**changes, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    return with_id(doc)
