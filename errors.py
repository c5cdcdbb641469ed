"""
Business errors raised by the booking services.

The HTTP layer maps each class to a status code and returns ``details``
alongside the message so a client can correct and resend the request.
"""

from typing import Any, Dict, Iterable, Optional


class BookingError(Exception):
    """Base class for all business rule failures."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"msg": self.message, **self.details}


class ValidationError(BookingError):
    """Caller supplied data that breaks a static rule."""

    status_code = 400


class ConflictError(BookingError):
    """Requested slots are already reserved."""

    status_code = 409

    def __init__(self, offending_slots: Iterable[str], message: str = "Some time slots are already booked"):
        self.offending_slots = list(offending_slots)
        super().__init__(message, {"unavailable_slots": self.offending_slots})


class NotFoundError(BookingError):
    status_code = 404


class InvalidStateError(BookingError):
    """Operation is not legal from the entity's current status."""

    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None):
        self.current_status = current_status
        super().__init__(message, {"status": current_status})


class PreconditionError(BookingError):
    """Finalization attempted before its preconditions hold."""

    status_code = 400

    NOT_ACCEPTED = "not_accepted"
    MISSING_RECEIPT = "missing_receipt"
    MISSING_PRICE = "missing_price"
    ALREADY_BOOKED = "already_booked"

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message, {"reason": reason})
