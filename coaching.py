"""
Coach profiles, availability windows and the session request workflow.

Request lifecycle::

    Pending --respond(Accepted)--> Accepted --finalize--> Booked
    Pending --respond(Rejected)--> Rejected

Status changes are conditional updates on the current status, so two
concurrent responses cannot both win.
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import artifacts
import config
from database import create_document, get_document, get_documents, now_utc, to_object_id, update_document, with_id
from errors import InvalidStateError, NotFoundError, PreconditionError, ValidationError
from reviews import average_rating, display_rating
from schemas import (
    ACCEPTED,
    BOOKED,
    PENDING,
    REJECTED,
    CoachPrice,
    CoachProfile,
    Requester,
    SessionBooking,
    SessionRequest,
    TimeSlot,
)
from slots import today, within_window

logger = logging.getLogger(__name__)


# Availability window


def validate_availability(tuples: Iterable[TimeSlot], today_date: Optional[date] = None, days: Optional[int] = None) -> List[TimeSlot]:
    """Reject the whole batch if any date falls outside [today, today + days]."""
    start = today_date or today()
    days = config.COACH_WINDOW_DAYS if days is None else days
    tuples = dedupe_time_slots(tuples)
    outside = [t for t in tuples if not within_window(t.date, start, days)]
    if outside:
        raise ValidationError(
            f"All available time slots must be within the next {days} days.",
            {"invalid_time_slots": [_slot_dict(t) for t in outside]},
        )
    return tuples


def dedupe_time_slots(tuples: Iterable[TimeSlot]) -> List[TimeSlot]:
    seen: Dict[tuple, TimeSlot] = {}
    for t in tuples:
        seen.setdefault(t.key(), t)
    return list(seen.values())


def _slot_dict(t: TimeSlot) -> Dict[str, str]:
    return {"date": t.date.isoformat(), "time_slot": t.time_slot}


def set_coach_availability(db: Database, coach_profile_id: str, tuples: Iterable[TimeSlot], today_date: Optional[date] = None) -> Dict[str, Any]:
    """Replace the coach's open (date, slot) tuples."""
    tuples = validate_availability(list(tuples), today_date)
    profile = update_document(
        db, "coachprofile", coach_profile_id, {"available_time_slots": [_slot_dict(t) for t in tuples]}
    )
    if not profile:
        raise NotFoundError("Coach profile not found")
    logger.info(f"Coach profile {coach_profile_id} now offers {len(tuples)} time slots")
    return profile


# Coach profiles


def create_coach_profile(db: Database, profile: CoachProfile, today_date: Optional[date] = None) -> Dict[str, Any]:
    profile.available_time_slots = validate_availability(profile.available_time_slots, today_date)
    pid = create_document(db, "coachprofile", profile)
    logger.info(f"Created coach profile {pid} for user {profile.user_id}")
    return get_document(db, "coachprofile", pid)


def update_coach_profile(db: Database, coach_profile_id: str, changes: Dict[str, Any], today_date: Optional[date] = None) -> Dict[str, Any]:
    """Partial update; empty fields keep their stored values."""
    changes = {k: v for k, v in changes.items() if v is not None}
    if "available_time_slots" in changes:
        tuples = validate_availability([TimeSlot.model_validate(t) for t in changes["available_time_slots"]], today_date)
        changes["available_time_slots"] = [_slot_dict(t) for t in tuples]
    if "coach_price" in changes:
        changes["coach_price"] = CoachPrice.model_validate(changes["coach_price"]).model_dump()
    profile = update_document(db, "coachprofile", coach_profile_id, changes)
    if not profile:
        raise NotFoundError("Coach profile not found")
    return profile


def _with_rating(db: Database, profile: Dict[str, Any]) -> Dict[str, Any]:
    profile["avg_rating"] = display_rating(average_rating(db, profile["id"]))
    return profile


def get_coach_profile(db: Database, coach_profile_id: str) -> Dict[str, Any]:
    profile = get_document(db, "coachprofile", coach_profile_id)
    if not profile:
        raise NotFoundError("Coach profile not found")
    return _with_rating(db, profile)


def get_coach_profile_by_user(db: Database, user_id: str) -> Dict[str, Any]:
    profile = with_id(db["coachprofile"].find_one({"user_id": user_id}))
    if not profile:
        raise NotFoundError("Coach profile not found")
    return _with_rating(db, profile)


def list_coach_profiles(db: Database, active_only: bool = False) -> List[Dict[str, Any]]:
    q = {"is_active": True} if active_only else {}
    return [_with_rating(db, p) for p in get_documents(db, "coachprofile", q, sort=[("coach_name", 1)])]


def toggle_coach_profile_status(db: Database, coach_profile_id: str) -> Dict[str, Any]:
    profile = get_document(db, "coachprofile", coach_profile_id)
    if not profile:
        raise NotFoundError("Coach profile not found")
    return update_document(db, "coachprofile", coach_profile_id, {"is_active": not profile.get("is_active", True)})


# Session requests


def create_session_request(
    db: Database,
    requester: Requester,
    coach_profile_id: str,
    sport_name: str,
    session_type: str,
    requested_time_slots: Iterable[TimeSlot],
) -> Dict[str, Any]:
    tuples = dedupe_time_slots(requested_time_slots)
    if not tuples:
        raise ValidationError("At least one time slot must be requested")

    coach = db["coachprofile"].find_one({"_id": to_object_id(coach_profile_id)})
    if not coach or not coach.get("is_active", True):
        raise NotFoundError("Coach profile not found")

    offered = {(s["date"], s["time_slot"]) for s in coach.get("available_time_slots", [])}
    unavailable = [_slot_dict(t) for t in tuples if t.key() not in offered]
    if unavailable:
        raise ValidationError("Requested time slots are not available.", {"unavailable_time_slots": unavailable})

    request = SessionRequest(
        user_id=requester.user_id,
        user_name=requester.user_name,
        user_email=requester.user_email,
        user_phone=requester.user_phone,
        sport_name=sport_name,
        session_type=session_type,
        coach_profile_id=coach_profile_id,
        coach_id=coach["user_id"],
        requested_time_slots=tuples,
    )
    rid = create_document(db, "sessionrequest", request)
    logger.info(f"Session request {rid} from user {requester.user_id} to coach profile {coach_profile_id}")
    return get_document(db, "sessionrequest", rid)


def get_session_request(db: Database, request_id: str) -> Dict[str, Any]:
    request = get_document(db, "sessionrequest", request_id)
    if not request:
        raise NotFoundError("Session request not found")
    return request


def _transition(db: Database, request_id: str, allowed: List[str], changes: Dict[str, Any], action: str) -> Dict[str, Any]:
    doc = db["sessionrequest"].find_one_and_update(
        {"_id": to_object_id(request_id), "status": {"$in": allowed}},
        {"$set": {**changes, "updated_at": now_utc()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is not None:
        return with_id(doc)
    current = get_session_request(db, request_id)
    raise InvalidStateError(f"Cannot {action} a session request that is {current['status']}", current["status"])


def respond_to_request(db: Database, request_id: str, decision: str, court_no: Optional[str] = None) -> Dict[str, Any]:
    """Coach accepts or rejects a pending request.

    Accepting with a court only records the court number; reserving it is a
    separate facility booking.
    """
    if decision not in (ACCEPTED, REJECTED):
        raise ValidationError("Decision must be Accepted or Rejected", {"status": decision})
    changes: Dict[str, Any] = {"status": decision}
    if decision == ACCEPTED and court_no:
        changes["court_no"] = court_no
    request = _transition(db, request_id, [PENDING], changes, "respond to")
    logger.info(f"Session request {request_id} {decision.lower()}")
    if decision == ACCEPTED:
        _warn_if_stale(db, request)
    return request


def _warn_if_stale(db: Database, request: Dict[str, Any]) -> None:
    coach = db["coachprofile"].find_one({"_id": to_object_id(request["coach_profile_id"])}) or {}
    offered = {(s["date"], s["time_slot"]) for s in coach.get("available_time_slots", [])}
    missing = [t for t in request["requested_time_slots"] if (t["date"], t["time_slot"]) not in offered]
    if missing:
        logger.warning(f"Session request {request['id']} accepted for slots no longer offered: {missing}")


def attach_payment_proof(db: Database, request_id: str, receipt: str) -> Dict[str, Any]:
    if not receipt:
        raise ValidationError("Receipt is required")
    return _transition(db, request_id, [PENDING, ACCEPTED], {"receipt": receipt}, "attach a receipt to")


def finalize_booking(db: Database, request_id: str) -> Dict[str, Any]:
    """Materialize the confirmed session for an accepted, paid request."""
    request = get_session_request(db, request_id)
    if request["status"] != ACCEPTED:
        raise PreconditionError(PreconditionError.NOT_ACCEPTED, "Session request has not been accepted yet")
    if not request.get("receipt"):
        raise PreconditionError(PreconditionError.MISSING_RECEIPT, "Receipt is required before booking a session")
    coach = db["coachprofile"].find_one({"_id": to_object_id(request["coach_profile_id"])})
    fee = CoachPrice.model_validate(coach.get("coach_price") or {}).for_session(request["session_type"]) if coach else None
    if fee is None:
        raise PreconditionError(PreconditionError.MISSING_PRICE, "Coach price information is missing.")

    booking = SessionBooking(
        session_request_id=request["id"],
        user_id=request["user_id"],
        user_name=request["user_name"],
        user_email=request["user_email"],
        user_phone=request["user_phone"],
        sport_name=request["sport_name"],
        session_type=request["session_type"],
        booked_time_slots=request["requested_time_slots"],
        coach_id=request["coach_id"],
        coach_name=coach["coach_name"],
        coach_email=coach.get("coach_email"),
        coach_level=coach["coach_level"],
        session_fee=fee,
        court_no=request.get("court_no"),
        receipt=request["receipt"],
    )
    try:
        bid = create_document(db, "sessionbooking", booking)
    except DuplicateKeyError:
        # a booking exists; make sure the request reflects it
        db["sessionrequest"].update_one(
            {"_id": to_object_id(request_id), "status": ACCEPTED},
            {"$set": {"status": BOOKED, "updated_at": now_utc()}},
        )
        raise PreconditionError(PreconditionError.ALREADY_BOOKED, "Session request is already booked")
    # the unique insert made this call the owner; a concurrent loser may have marked it Booked already
    _transition(db, request_id, [ACCEPTED, BOOKED], {"status": BOOKED}, "book")
    logger.info(f"Session booking {bid} created from request {request_id}")
    return attach_session_verification_code(db, bid)


def attach_session_verification_code(db: Database, booking_id: str) -> Dict[str, Any]:
    booking = get_session_booking(db, booking_id)
    if booking.get("qr_code_url"):
        return booking
    payload = {
        "booking_id": booking["id"],
        "user_name": booking["user_name"],
        "sport_name": booking["sport_name"],
        "session_type": booking["session_type"],
        "coach_name": booking["coach_name"],
        "session_fee": booking["session_fee"],
        "court_no": booking.get("court_no"),
        "time_slots": booking["booked_time_slots"],
    }
    try:
        url = artifacts.generate_verification_code(db, "session", booking["id"], payload)
    except Exception:
        logger.exception(f"Verification code generation failed for session booking {booking_id}")
        return booking
    return update_document(db, "sessionbooking", booking_id, {"qr_code_url": url})


def list_user_session_requests(db: Database, user_id: str) -> List[Dict[str, Any]]:
    """Requests of a user, enriched with current coach details and rating."""
    out = []
    for request in get_documents(db, "sessionrequest", {"user_id": user_id}, sort=[("created_at", -1)]):
        coach = get_document(db, "coachprofile", request["coach_profile_id"])
        if coach:
            price = CoachPrice.model_validate(coach.get("coach_price") or {}).for_session(request["session_type"])
            request.update(
                coach_name=coach["coach_name"],
                coach_level=coach["coach_level"],
                coaching_sport=coach["coaching_sport"],
                coach_image=coach.get("image"),
                session_price=price,
                avg_rating=display_rating(average_rating(db, coach["id"])),
            )
        else:
            request.update(coach_name=None, coach_level=None, coaching_sport=None, coach_image=None, session_price=None, avg_rating=None)
        out.append(request)
    return out


def list_coach_session_requests(db: Database, coach_id: str) -> List[Dict[str, Any]]:
    return get_documents(db, "sessionrequest", {"coach_id": coach_id}, sort=[("created_at", -1)])


# Session bookings


def get_session_booking(db: Database, booking_id: str) -> Dict[str, Any]:
    booking = get_document(db, "sessionbooking", booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def list_session_bookings(db: Database, user_id: Optional[str] = None, coach_id: Optional[str] = None) -> List[Dict[str, Any]]:
    q: Dict[str, Any] = {}
    if user_id:
        q["user_id"] = user_id
    if coach_id:
        q["coach_id"] = coach_id
    return get_documents(db, "sessionbooking", q, sort=[("created_at", -1)])
