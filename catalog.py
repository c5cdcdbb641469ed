import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import artifacts
from database import create_document, get_document, get_documents, to_object_id, update_document
from errors import NotFoundError, ValidationError
from schemas import Equipment, EquipmentBooking, Facility, Requester
from slots import get_timezone, parse_date, today

logger = logging.getLogger(__name__)


# Facilities


def create_facility(db: Database, facility: Facility) -> Dict[str, Any]:
    try:
        fid = create_document(db, "facility", facility)
    except DuplicateKeyError:
        raise ValidationError(
            "Court number already exists for this sport",
            {"court_number": facility.court_number, "sport_name": facility.sport_name},
        )
    logger.info(f"Created facility {fid}: court {facility.court_number} ({facility.sport_name})")
    return get_document(db, "facility", fid)


def get_facility(db: Database, facility_id: str) -> Dict[str, Any]:
    facility = get_document(db, "facility", facility_id)
    if not facility:
        raise NotFoundError("Facility not found")
    return facility


def find_court(db: Database, court_number: str, sport_name: str) -> Optional[Dict[str, Any]]:
    return db["facility"].find_one({"court_number": court_number, "sport_name": sport_name})


def list_facilities(db: Database, active_only: bool = False) -> List[Dict[str, Any]]:
    q = {"is_active": True} if active_only else {}
    return get_documents(db, "facility", q, sort=[("sport_name", 1), ("court_number", 1)])


def update_facility(db: Database, facility_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    # empty values keep the stored ones
    changes = {k: v for k, v in changes.items() if v is not None}
    try:
        facility = update_document(db, "facility", facility_id, changes)
    except DuplicateKeyError:
        raise ValidationError("Court number already exists for this sport", changes)
    if not facility:
        raise NotFoundError("Facility not found")
    return facility


def toggle_facility_status(db: Database, facility_id: str) -> Dict[str, Any]:
    facility = get_facility(db, facility_id)
    return update_document(db, "facility", facility_id, {"is_active": not facility.get("is_active", True)})


def delete_facility(db: Database, facility_id: str) -> None:
    result = db["facility"].delete_one({"_id": to_object_id(facility_id)})
    if result.deleted_count == 0:
        raise NotFoundError("Facility not found")
    logger.info(f"Deleted facility {facility_id}")


# Equipment


def create_equipment(db: Database, equipment: Equipment) -> Dict[str, Any]:
    eid = create_document(db, "equipment", equipment)
    logger.info(f"Created equipment {eid}: {equipment.equipment_name}")
    return get_document(db, "equipment", eid)


def get_equipment(db: Database, equipment_id: str) -> Dict[str, Any]:
    equipment = get_document(db, "equipment", equipment_id)
    if not equipment:
        raise NotFoundError("Equipment not found")
    return equipment


def list_equipment(db: Database, active_only: bool = False) -> List[Dict[str, Any]]:
    q = {"is_active": True} if active_only else {}
    return get_documents(db, "equipment", q, sort=[("equipment_name", 1)])


def update_equipment(db: Database, equipment_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    changes = {k: v for k, v in changes.items() if v is not None}
    equipment = update_document(db, "equipment", equipment_id, changes)
    if not equipment:
        raise NotFoundError("Equipment not found")
    return equipment


def toggle_equipment_status(db: Database, equipment_id: str) -> Dict[str, Any]:
    equipment = get_equipment(db, equipment_id)
    return update_document(db, "equipment", equipment_id, {"is_active": not equipment.get("is_active", True)})


def delete_equipment(db: Database, equipment_id: str) -> None:
    result = db["equipment"].delete_one({"_id": to_object_id(equipment_id)})
    if result.deleted_count == 0:
        raise NotFoundError("Equipment not found")


# Equipment bookings


def create_equipment_booking(
    db: Database,
    requester: Requester,
    equipment_id: str,
    quantity: int,
    date_time: datetime,
    receipt: Optional[str],
    today_date=None,
) -> Dict[str, Any]:
    """Rent equipment; price comes from the catalog, total = rent price * quantity.

    There is no stock accounting, so no conflict check either.
    """
    if not receipt:
        raise ValidationError("Receipt is required for booking")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", {"quantity": quantity})
    if date_time.tzinfo is not None:
        day = date_time.astimezone(get_timezone()).date()
    else:
        day = parse_date(date_time)
    current = today_date or today()
    if day < current:
        raise ValidationError("Booking date and time cannot be in the past", {"date_time": date_time.isoformat()})

    equipment = get_equipment(db, equipment_id)
    if not equipment.get("is_active", True):
        raise ValidationError("Equipment is not available for booking", {"equipment_id": equipment_id})

    price = float(equipment["rent_price"])
    booking = EquipmentBooking(
        user_id=requester.user_id,
        user_name=requester.user_name,
        user_email=requester.user_email,
        user_phone_number=requester.user_phone,
        equipment_id=equipment_id,
        equipment_name=equipment["equipment_name"],
        sport_name=equipment["sport_name"],
        date_time=date_time,
        equipment_price=price,
        quantity=quantity,
        total_price=price * quantity,
        receipt=receipt,
    )
    bid = create_document(db, "equipmentbooking", booking)
    logger.info(f"Created equipment booking {bid} for user {requester.user_id}")
    return attach_equipment_verification_code(db, bid)


def attach_equipment_verification_code(db: Database, booking_id: str) -> Dict[str, Any]:
    booking = get_equipment_booking(db, booking_id)
    if booking.get("verification_code"):
        return booking
    payload = {
        "booking_id": booking["id"],
        "user_name": booking["user_name"],
        "user_email": booking["user_email"],
        "equipment_name": booking["equipment_name"],
        "date_time": booking["date_time"],
        "quantity": booking["quantity"],
        "equipment_price": booking["equipment_price"],
        "total_price": booking["total_price"],
    }
    try:
        url = artifacts.generate_verification_code(db, "equipment", booking["id"], payload)
    except Exception:
        logger.exception(f"Verification code generation failed for equipment booking {booking_id}")
        return booking
    return update_document(db, "equipmentbooking", booking_id, {"verification_code": url})


def get_equipment_booking(db: Database, booking_id: str) -> Dict[str, Any]:
    booking = get_document(db, "equipmentbooking", booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def list_equipment_bookings(db: Database, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
    q = {"user_id": user_id} if user_id else {}
    return get_documents(db, "equipmentbooking", q, sort=[("created_at", -1)])
