"""
Database Schemas for the Sports Facility Booking API

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase class name (e.g., FacilityBooking -> "facilitybooking").
Calendar dates are stored as ISO strings (YYYY-MM-DD).
"""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Enumerations

SessionType = Literal["Individual Session", "Group Session"]
CoachLevel = Literal["Professional Level", "Intermediate Level", "Beginner Level"]
RequestStatus = Literal["Pending", "Accepted", "Rejected", "Booked"]

PENDING = "Pending"
ACCEPTED = "Accepted"
REJECTED = "Rejected"
BOOKED = "Booked"

# Shared value objects


class TimeSlot(BaseModel):
    """A (date, slot) tuple, e.g. 2026-10-21 / "10:00 - 11:00"."""

    date: date
    time_slot: str = Field(..., min_length=1)

    def key(self):
        return (self.date.isoformat(), self.time_slot)


class CoachPrice(BaseModel):
    individual_session_price: Optional[float] = Field(None, ge=0)
    group_session_price: Optional[float] = Field(None, ge=0)

    def for_session(self, session_type: str) -> Optional[float]:
        if session_type == "Individual Session":
            return self.individual_session_price
        if session_type == "Group Session":
            return self.group_session_price
        return None


class Requester(BaseModel):
    """Denormalized contact details of the person booking."""

    user_id: str
    user_name: str
    user_email: str
    user_phone: str


# Catalog


class Facility(BaseModel):
    court_number: str
    sport_name: str
    sport_category: str
    court_price: float = Field(..., ge=0)
    image: Optional[str] = Field(None, description="Opaque image URL")
    is_active: bool = True


class Equipment(BaseModel):
    equipment_name: str
    sport_name: str
    rent_price: float = Field(..., ge=0)
    image: Optional[str] = None
    is_active: bool = True


# Bookings


class FacilityBooking(BaseModel):
    user_id: str
    user_name: str
    user_email: str
    user_phone_number: str
    sport_name: str
    court_number: str
    court_price: float = Field(..., ge=0)
    date: date
    time_slots: List[str] = Field(..., min_length=1)
    total_hours: int
    total_price: float
    receipt: str = Field(..., description="Proof-of-payment URL")
    verification_code: Optional[str] = Field(None, description="Set after the booking is persisted")


class FacilitySlot(BaseModel):
    """One reserved slot of a FacilityBooking; unique per court/sport/date/slot."""

    booking_id: str
    court_number: str
    sport_name: str
    date: date
    time_slot: str


class EquipmentBooking(BaseModel):
    user_id: str
    user_name: str
    user_email: str
    user_phone_number: str
    equipment_id: str
    equipment_name: str
    sport_name: str
    date_time: datetime
    equipment_price: float
    quantity: int = Field(..., ge=1)
    total_price: float
    receipt: str
    verification_code: Optional[str] = None


# Coaching


class CoachProfile(BaseModel):
    user_id: str
    coach_name: str
    coach_email: Optional[str] = None
    coach_level: CoachLevel
    coaching_sport: str
    coach_price: CoachPrice = Field(default_factory=CoachPrice)
    available_time_slots: List[TimeSlot] = Field(default_factory=list)
    experience: str
    offer_sessions: List[SessionType] = Field(default_factory=list)
    session_description: str
    image: Optional[str] = None
    is_active: bool = True


class SessionRequest(BaseModel):
    user_id: str
    user_name: str
    user_email: str
    user_phone: str
    sport_name: str
    session_type: SessionType
    coach_profile_id: str
    coach_id: str
    requested_time_slots: List[TimeSlot] = Field(..., min_length=1)
    status: RequestStatus = PENDING
    receipt: Optional[str] = None
    court_no: Optional[str] = None


class SessionBooking(BaseModel):
    """Point-in-time copy of the request and coach data; never synced afterwards."""

    session_request_id: str
    user_id: str
    user_name: str
    user_email: str
    user_phone: str
    sport_name: str
    session_type: SessionType
    booked_time_slots: List[TimeSlot]
    coach_id: str
    coach_name: str
    coach_email: Optional[str] = None
    coach_level: str
    session_fee: float
    court_no: Optional[str] = None
    receipt: str
    qr_code_url: Optional[str] = None


class Review(BaseModel):
    user_id: str
    user_name: Optional[str] = None
    coach_profile_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None

    @field_validator("rating", mode="before")
    @classmethod
    def reject_fractional(cls, v):
        if isinstance(v, float) and not v.is_integer():
            raise ValueError("rating must be a whole number")
        return v


class VerificationCode(BaseModel):
    kind: Literal["facility", "equipment", "session"]
    booking_id: str
    payload: dict

# These schemas are used for persistence and for request validation.
