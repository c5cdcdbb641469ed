"""
Verification codes shown at check-in.

Rendering the QR image and uploading it are handled outside this service;
here a code is the recorded payload plus an opaque reference URL. A booking
has at most one code per kind.
"""

import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from database import create_document, get_document
from schemas import VerificationCode

logger = logging.getLogger(__name__)


def _code_url(kind: str, code_id) -> str:
    return f"{config.ARTIFACT_BASE_URL}/{kind}/{code_id}"


def generate_verification_code(db: Database, kind: str, booking_id: str, payload: Dict[str, Any]) -> str:
    """Return the booking's code URL, recording the payload the first time."""
    existing = db["verificationcode"].find_one({"kind": kind, "booking_id": booking_id}, {"_id": 1})
    if existing:
        return _code_url(kind, existing["_id"])
    code_id = ObjectId()
    code = VerificationCode(kind=kind, booking_id=booking_id, payload=payload)
    try:
        create_document(db, "verificationcode", code, _id=code_id)
    except DuplicateKeyError:
        existing = db["verificationcode"].find_one({"kind": kind, "booking_id": booking_id}, {"_id": 1})
        return _code_url(kind, existing["_id"])
    logger.debug(f"Generated {kind} verification code {code_id} for booking {booking_id}")
    return _code_url(kind, code_id)


def lookup_verification_code(db: Database, code_id: str) -> Optional[Dict[str, Any]]:
    return get_document(db, "verificationcode", code_id)
