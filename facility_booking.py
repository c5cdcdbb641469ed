"""
Court reservations.

The reservation ledger is the ``facilityslot`` collection: one row per
reserved (court, sport, date, slot), guarded by a unique index. A booking
is only written after all of its rows were claimed, so two overlapping
requests can never both succeed even when their pre-checks interleave.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import artifacts
import config
from catalog import find_court
from database import create_document, get_document, get_documents, update_document
from errors import ConflictError, NotFoundError, ValidationError
from schemas import FacilityBooking, FacilitySlot, Requester
from slots import SLOT_CATALOG, dedupe, in_catalog_order, invalid_slots, parse_date, today

logger = logging.getLogger(__name__)


@dataclass
class ConflictCheck:
    ok: bool
    offending_slots: List[str] = field(default_factory=list)


def reserved_slots(db: Database, court_number: str, day: date, sport_name: str) -> set:
    """Union of every slot already reserved for this court/date/sport."""
    rows = db["facilityslot"].find(
        {"court_number": court_number, "sport_name": sport_name, "date": parse_date(day).isoformat()},
        {"time_slot": 1},
    )
    return {r["time_slot"] for r in rows}


def check_conflicts(
    db: Database,
    court_number: str,
    day: date,
    sport_name: str,
    requested_slots: Iterable[str],
    catalog: Sequence[str] = SLOT_CATALOG,
) -> ConflictCheck:
    taken = reserved_slots(db, court_number, day, sport_name) & set(requested_slots)
    if taken:
        return ConflictCheck(ok=False, offending_slots=in_catalog_order(taken, catalog))
    return ConflictCheck(ok=True)


def get_available_slots(
    db: Database,
    court_number: str,
    day: date,
    sport_name: str,
    catalog: Sequence[str] = SLOT_CATALOG,
) -> List[str]:
    taken = reserved_slots(db, court_number, day, sport_name)
    return [s for s in catalog if s not in taken]


def get_available_facilities(db: Database, sport_name: str, day: date, time_slot: str) -> List[Dict[str, Any]]:
    """Active courts of a sport with no reservation for the given date and slot."""
    booked_courts = db["facilityslot"].distinct(
        "court_number",
        {"sport_name": sport_name, "date": parse_date(day).isoformat(), "time_slot": time_slot},
    )
    return get_documents(
        db,
        "facility",
        {"sport_name": sport_name, "is_active": True, "court_number": {"$nin": booked_courts}},
        sort=[("court_number", 1)],
    )


def _release_claims(db: Database, booking_id: str) -> None:
    db["facilityslot"].delete_many({"booking_id": booking_id})


def _claim_slots(db: Database, booking_id: str, court_number: str, sport_name: str, day: date, slots: List[str]) -> Optional[str]:
    """Insert one ledger row per slot, in the given order.

    Stops at the first slot another booking holds and returns it; returns
    None when every slot was claimed. Callers pass slots in catalog order so
    that competing attempts always contend for their lowest shared slot first.
    """
    for slot in slots:
        row = FacilitySlot(booking_id=booking_id, court_number=court_number, sport_name=sport_name, date=day, time_slot=slot)
        try:
            create_document(db, "facilityslot", row)
        except DuplicateKeyError:
            return slot
    return None


def _slot_holders(db: Database, court_number: str, sport_name: str, day: date, slots: List[str]):
    """Split the held slots into those of written bookings and those of claims still in flight."""
    holders = {
        r["time_slot"]: r["booking_id"]
        for r in db["facilityslot"].find(
            {"court_number": court_number, "sport_name": sport_name, "date": day.isoformat(), "time_slot": {"$in": slots}},
            {"time_slot": 1, "booking_id": 1},
        )
    }
    written = {
        str(d["_id"])
        for d in db["facilitybooking"].find({"_id": {"$in": [ObjectId(b) for b in set(holders.values())]}}, {"_id": 1})
    }
    booked = [s for s, b in holders.items() if b in written]
    pending = [s for s, b in holders.items() if b not in written]
    return booked, pending


def _reserve(db: Database, booking_id: str, court_number: str, sport_name: str, day: date, slots: List[str], catalog: Sequence[str]) -> None:
    """Claim every slot for booking_id or raise ConflictError naming slots that are really booked.

    A lost claim whose holder has not written its booking yet may still be
    released, so the attempt backs off and tries again.
    """
    lost = None
    for attempt in range(config.CLAIM_ATTEMPTS):
        lost = _claim_slots(db, booking_id, court_number, sport_name, day, slots)
        if lost is None:
            return
        _release_claims(db, booking_id)
        booked, pending = _slot_holders(db, court_number, sport_name, day, slots)
        if booked:
            offending = in_catalog_order(booked, catalog)
            logger.warning(f"Court {court_number} {sport_name} {day}: lost race for slots {offending}")
            raise ConflictError(offending)
        logger.info(f"Court {court_number} {sport_name} {day}: slots {pending} held by a booking in progress, retrying")
        time.sleep(config.CLAIM_RETRY_DELAY * (attempt + 1))
    logger.warning(f"Court {court_number} {sport_name} {day}: gave up claiming {lost} after {config.CLAIM_ATTEMPTS} attempts")
    raise ConflictError([lost])


def create_facility_booking(
    db: Database,
    requester: Requester,
    court_number: str,
    sport_name: str,
    day,
    time_slots: Iterable[str],
    receipt: Optional[str],
    catalog: Sequence[str] = SLOT_CATALOG,
    today_date: Optional[date] = None,
) -> Dict[str, Any]:
    if not receipt:
        raise ValidationError("Receipt is required for booking")
    slots = dedupe(time_slots)
    if not slots:
        raise ValidationError("At least one time slot is required")
    bad = invalid_slots(slots, catalog)
    if bad:
        raise ValidationError("Invalid time slots", {"invalid_slots": bad})
    day = parse_date(day)
    if day < (today_date or today()):
        raise ValidationError("Booking date cannot be in the past", {"date": day.isoformat()})

    court = find_court(db, court_number, sport_name)
    if not court:
        raise NotFoundError("Facility not found", {"court_number": court_number, "sport_name": sport_name})
    if not court.get("is_active", True):
        raise ValidationError("Facility is not available for booking", {"court_number": court_number})

    slots = in_catalog_order(slots, catalog)
    check = check_conflicts(db, court_number, day, sport_name, slots, catalog)
    if not check.ok:
        # claims of bookings still in flight are left to the claim loop
        booked, _ = _slot_holders(db, court_number, sport_name, day, check.offending_slots)
        if booked:
            offending = in_catalog_order(booked, catalog)
            logger.warning(f"Court {court_number} {sport_name} {day}: slots already booked {offending}")
            raise ConflictError(offending)

    booking_oid = ObjectId()
    booking_id = str(booking_oid)
    _reserve(db, booking_id, court_number, sport_name, day, slots, catalog)

    price = float(court["court_price"])
    booking = FacilityBooking(
        user_id=requester.user_id,
        user_name=requester.user_name,
        user_email=requester.user_email,
        user_phone_number=requester.user_phone,
        sport_name=sport_name,
        court_number=court_number,
        court_price=price,
        date=day,
        time_slots=slots,
        total_hours=len(slots),
        total_price=price * len(slots),
        receipt=receipt,
    )
    try:
        create_document(db, "facilitybooking", booking, _id=booking_oid)
    except Exception:
        _release_claims(db, booking_id)
        raise
    logger.info(f"Created facility booking {booking_id}: court {court_number} {sport_name} {day} {booking.time_slots}")
    return attach_facility_verification_code(db, booking_id)


def attach_facility_verification_code(db: Database, booking_id: str) -> Dict[str, Any]:
    """Second write of a booking; safe to call again when the first attempt failed."""
    booking = get_facility_booking(db, booking_id)
    if booking.get("verification_code"):
        return booking
    payload = {
        "booking_id": booking["id"],
        "user_name": booking["user_name"],
        "user_email": booking["user_email"],
        "sport_name": booking["sport_name"],
        "court_number": booking["court_number"],
        "date": booking["date"],
        "time_slots": booking["time_slots"],
        "total_hours": booking["total_hours"],
        "court_price": booking["court_price"],
        "total_price": booking["total_price"],
    }
    try:
        url = artifacts.generate_verification_code(db, "facility", booking["id"], payload)
    except Exception:
        logger.exception(f"Verification code generation failed for facility booking {booking_id}")
        return booking
    return update_document(db, "facilitybooking", booking_id, {"verification_code": url})


def get_facility_booking(db: Database, booking_id: str) -> Dict[str, Any]:
    booking = get_document(db, "facilitybooking", booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def list_facility_bookings(db: Database, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    q = {"user_id": user_id} if user_id else {}
    return get_documents(db, "facilitybooking", q, sort=[("date", -1), ("created_at", -1)])
