import logging
import os
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from pymongo.database import Database

import catalog
import coaching
import config
import facility_booking
import reviews
from artifacts import lookup_verification_code
from database import ensure_indexes, get_db
from errors import BookingError
from schemas import CoachLevel, CoachPrice, CoachProfile, Equipment, Facility, Requester, Review, SessionType, TimeSlot

logger = logging.getLogger(__name__)


def setup_logging(level: str = config.LOG_LEVEL):
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s]: %(name)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logging.basicConfig(level=level, handlers=[handler])


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes(get_db())
    yield


app = FastAPI(title="Sports Facility Booking API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_database() -> Database:
    return get_db()


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


API = "/api/v1"


# Facilities

class FacilityUpdate(BaseModel):
    court_number: Optional[str] = None
    sport_name: Optional[str] = None
    sport_category: Optional[str] = None
    court_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None


@app.post(f"{API}/facilities", status_code=201)
def create_facility(req: Facility, db: Database = Depends(get_database)):
    return catalog.create_facility(db, req)


@app.get(f"{API}/facilities")
def list_facilities(db: Database = Depends(get_database)):
    return catalog.list_facilities(db)


@app.get(f"{API}/facilities/available")
def list_active_facilities(db: Database = Depends(get_database)):
    return catalog.list_facilities(db, active_only=True)


@app.get(f"{API}/facilities/{{facility_id}}")
def get_facility(facility_id: str, db: Database = Depends(get_database)):
    return catalog.get_facility(db, facility_id)


@app.put(f"{API}/facilities/toggle/{{facility_id}}")
def toggle_facility(facility_id: str, db: Database = Depends(get_database)):
    return catalog.toggle_facility_status(db, facility_id)


@app.put(f"{API}/facilities/{{facility_id}}")
def update_facility(facility_id: str, req: FacilityUpdate, db: Database = Depends(get_database)):
    return catalog.update_facility(db, facility_id, req.model_dump())


@app.delete(f"{API}/facilities/{{facility_id}}", status_code=204)
def delete_facility(facility_id: str, db: Database = Depends(get_database)):
    catalog.delete_facility(db, facility_id)


# Equipment

class EquipmentUpdate(BaseModel):
    equipment_name: Optional[str] = None
    sport_name: Optional[str] = None
    rent_price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = None


@app.post(f"{API}/equipment", status_code=201)
def create_equipment(req: Equipment, db: Database = Depends(get_database)):
    return catalog.create_equipment(db, req)


@app.get(f"{API}/equipment")
def list_equipment(db: Database = Depends(get_database)):
    return catalog.list_equipment(db)


@app.get(f"{API}/equipment/available")
def list_active_equipment(db: Database = Depends(get_database)):
    return catalog.list_equipment(db, active_only=True)


@app.get(f"{API}/equipment/{{equipment_id}}")
def get_equipment(equipment_id: str, db: Database = Depends(get_database)):
    return catalog.get_equipment(db, equipment_id)


@app.put(f"{API}/equipment/toggle/{{equipment_id}}")
def toggle_equipment(equipment_id: str, db: Database = Depends(get_database)):
    return catalog.toggle_equipment_status(db, equipment_id)


@app.put(f"{API}/equipment/{{equipment_id}}")
def update_equipment(equipment_id: str, req: EquipmentUpdate, db: Database = Depends(get_database)):
    return catalog.update_equipment(db, equipment_id, req.model_dump())


@app.delete(f"{API}/equipment/{{equipment_id}}", status_code=204)
def delete_equipment(equipment_id: str, db: Database = Depends(get_database)):
    catalog.delete_equipment(db, equipment_id)


# Equipment bookings

class CreateEquipmentBookingRequest(Requester):
    equipment_id: str
    quantity: int
    date_time: datetime
    receipt: Optional[str] = None


@app.post(f"{API}/equipment-booking", status_code=201)
def create_equipment_booking(req: CreateEquipmentBookingRequest, db: Database = Depends(get_database)):
    requester = Requester(**req.model_dump(include=set(Requester.model_fields)))
    booking = catalog.create_equipment_booking(db, requester, req.equipment_id, req.quantity, req.date_time, req.receipt)
    return {"msg": "Booking created successfully", "equipment_booking": booking}


@app.get(f"{API}/equipment-booking")
def list_equipment_bookings(db: Database = Depends(get_database)):
    return catalog.list_equipment_bookings(db)


@app.get(f"{API}/equipment-booking/user/{{user_id}}")
def list_user_equipment_bookings(user_id: str, db: Database = Depends(get_database)):
    return catalog.list_equipment_bookings(db, user_id=user_id)


@app.get(f"{API}/equipment-booking/{{booking_id}}")
def get_equipment_booking(booking_id: str, db: Database = Depends(get_database)):
    return catalog.get_equipment_booking(db, booking_id)


@app.post(f"{API}/equipment-booking/{{booking_id}}/verification-code")
def retry_equipment_verification_code(booking_id: str, db: Database = Depends(get_database)):
    return catalog.attach_equipment_verification_code(db, booking_id)


# Facility bookings

class CreateFacilityBookingRequest(Requester):
    sport_name: str
    court_number: str
    date: date
    time_slots: List[str]
    receipt: Optional[str] = None


class AvailableSlotsRequest(BaseModel):
    court_number: str
    sport_name: str
    date: date


class AvailableFacilitiesRequest(BaseModel):
    sport_name: str
    date: date
    time_slot: str


@app.post(f"{API}/facility-booking", status_code=201)
def create_facility_booking(req: CreateFacilityBookingRequest, db: Database = Depends(get_database)):
    requester = Requester(**req.model_dump(include=set(Requester.model_fields)))
    booking = facility_booking.create_facility_booking(
        db, requester, req.court_number, req.sport_name, req.date, req.time_slots, req.receipt
    )
    return {"msg": "Booking created successfully", "facility_booking": booking}


@app.get(f"{API}/facility-booking")
def list_facility_bookings(db: Database = Depends(get_database)):
    return facility_booking.list_facility_bookings(db)


@app.post(f"{API}/facility-booking/available-slots")
def available_slots(req: AvailableSlotsRequest, db: Database = Depends(get_database)):
    slots = facility_booking.get_available_slots(db, req.court_number, req.date, req.sport_name)
    return {"available_slots": slots}


@app.post(f"{API}/facility-booking/available-facilities")
def available_facilities(req: AvailableFacilitiesRequest, db: Database = Depends(get_database)):
    facilities = facility_booking.get_available_facilities(db, req.sport_name, req.date, req.time_slot)
    if not facilities:
        raise HTTPException(status_code=404, detail="No available facilities for the selected time slot")
    return {"available_facilities": facilities}


@app.get(f"{API}/facility-booking/user/{{user_id}}")
def list_user_facility_bookings(user_id: str, db: Database = Depends(get_database)):
    return facility_booking.list_facility_bookings(db, user_id=user_id)


@app.get(f"{API}/facility-booking/{{booking_id}}")
def get_facility_booking(booking_id: str, db: Database = Depends(get_database)):
    return facility_booking.get_facility_booking(db, booking_id)


@app.post(f"{API}/facility-booking/{{booking_id}}/verification-code")
def retry_facility_verification_code(booking_id: str, db: Database = Depends(get_database)):
    return facility_booking.attach_facility_verification_code(db, booking_id)


# Coach profiles

class CoachProfileUpdate(BaseModel):
    coach_name: Optional[str] = None
    coach_email: Optional[str] = None
    coach_level: Optional[CoachLevel] = None
    coaching_sport: Optional[str] = None
    coach_price: Optional[CoachPrice] = None
    available_time_slots: Optional[List[TimeSlot]] = None
    experience: Optional[str] = None
    offer_sessions: Optional[List[SessionType]] = None
    session_description: Optional[str] = None
    image: Optional[str] = None


class AvailabilityRequest(BaseModel):
    available_time_slots: List[TimeSlot]


@app.post(f"{API}/coach-profile", status_code=201)
def create_coach_profile(req: CoachProfile, db: Database = Depends(get_database)):
    return coaching.create_coach_profile(db, req)


@app.get(f"{API}/coach-profile/all")
def list_coach_profiles(db: Database = Depends(get_database)):
    return coaching.list_coach_profiles(db)


@app.get(f"{API}/coach-profile/coach/{{user_id}}")
def get_coach_profile_by_user(user_id: str, db: Database = Depends(get_database)):
    return coaching.get_coach_profile_by_user(db, user_id)


@app.put(f"{API}/coach-profile/toggle/{{profile_id}}")
def toggle_coach_profile(profile_id: str, db: Database = Depends(get_database)):
    return coaching.toggle_coach_profile_status(db, profile_id)


@app.put(f"{API}/coach-profile/{{profile_id}}/availability")
def set_availability(profile_id: str, req: AvailabilityRequest, db: Database = Depends(get_database)):
    return coaching.set_coach_availability(db, profile_id, req.available_time_slots)


@app.put(f"{API}/coach-profile/{{profile_id}}")
def update_coach_profile(profile_id: str, req: CoachProfileUpdate, db: Database = Depends(get_database)):
    return coaching.update_coach_profile(db, profile_id, req.model_dump(mode="json"))


@app.get(f"{API}/coach-profile/{{profile_id}}")
def get_coach_profile(profile_id: str, db: Database = Depends(get_database)):
    return coaching.get_coach_profile(db, profile_id)


# Sessions

class CreateSessionRequest(Requester):
    sport_name: str
    session_type: SessionType
    coach_profile_id: str
    requested_time_slots: List[TimeSlot]


class RespondRequest(BaseModel):
    status: Literal["Accepted", "Rejected"]
    court_no: Optional[str] = None


class ReceiptRequest(BaseModel):
    receipt: str


class BookSessionRequest(BaseModel):
    session_request_id: str


@app.post(f"{API}/session/request", status_code=201)
def create_session_request(req: CreateSessionRequest, db: Database = Depends(get_database)):
    requester = Requester(**req.model_dump(include=set(Requester.model_fields)))
    return coaching.create_session_request(
        db, requester, req.coach_profile_id, req.sport_name, req.session_type, req.requested_time_slots
    )


@app.put(f"{API}/session/respond/{{request_id}}")
def respond_to_session_request(request_id: str, req: RespondRequest, db: Database = Depends(get_database)):
    return coaching.respond_to_request(db, request_id, req.status, req.court_no)


@app.get(f"{API}/session/requests/{{user_id}}")
def list_user_session_requests(user_id: str, db: Database = Depends(get_database)):
    return coaching.list_user_session_requests(db, user_id)


@app.get(f"{API}/session/coach/requests/{{coach_id}}")
def list_coach_session_requests(coach_id: str, db: Database = Depends(get_database)):
    return coaching.list_coach_session_requests(db, coach_id)


@app.get(f"{API}/session/request/{{request_id}}")
def get_session_request(request_id: str, db: Database = Depends(get_database)):
    return coaching.get_session_request(db, request_id)


@app.post(f"{API}/session/upload-receipt/{{request_id}}")
def upload_receipt(request_id: str, req: ReceiptRequest, db: Database = Depends(get_database)):
    return coaching.attach_payment_proof(db, request_id, req.receipt)


@app.post(f"{API}/session/booking")
def book_session(req: BookSessionRequest, db: Database = Depends(get_database)):
    return coaching.finalize_booking(db, req.session_request_id)


@app.get(f"{API}/session/bookings")
def list_session_bookings(db: Database = Depends(get_database)):
    return coaching.list_session_bookings(db)


@app.get(f"{API}/session/booking/coach/{{coach_id}}")
def list_coach_session_bookings(coach_id: str, db: Database = Depends(get_database)):
    return coaching.list_session_bookings(db, coach_id=coach_id)


@app.get(f"{API}/session/booking/{{user_id}}")
def list_user_session_bookings(user_id: str, db: Database = Depends(get_database)):
    return coaching.list_session_bookings(db, user_id=user_id)


@app.get(f"{API}/session/download-qrcode/{{booking_id}}")
def get_session_qr_code(booking_id: str, db: Database = Depends(get_database)):
    booking = coaching.get_session_booking(db, booking_id)
    return {"qr_code_url": booking.get("qr_code_url")}


@app.post(f"{API}/session/booking/{{booking_id}}/verification-code")
def retry_session_verification_code(booking_id: str, db: Database = Depends(get_database)):
    return coaching.attach_session_verification_code(db, booking_id)


# Reviews

@app.post(f"{API}/reviews", status_code=201)
def add_review(req: Review, db: Database = Depends(get_database)):
    return reviews.add_review(db, req)


@app.get(f"{API}/reviews/{{coach_profile_id}}")
def list_reviews(coach_profile_id: str, db: Database = Depends(get_database)):
    return reviews.list_reviews(db, coach_profile_id)


# Guard check-in

@app.get(f"{API}/verification-code/{{code_id}}")
def get_verification_code(code_id: str, db: Database = Depends(get_database)):
    code = lookup_verification_code(db, code_id)
    if not code:
        raise HTTPException(status_code=404, detail="Verification code not found")
    return code


@app.get("/test")
def test_database(db: Database = Depends(get_database)):
    response: Dict[str, object] = {
        "backend": "Running",
        "database": "Not Available",
        "database_name": None,
        "collections": [],
    }
    try:
        response["database_name"] = db.name
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "Connected & Working"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        response["database"] = f"Error: {str(e)[:50]}"
    response["database_url"] = "Set" if os.getenv("DATABASE_URL") else "Not Set"
    return response


if __name__ == "__main__":
    import uvicorn

    setup_logging()
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
