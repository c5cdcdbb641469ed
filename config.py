import logging
import os
from typing import Tuple

logger = logging.getLogger(__name__)

# --- Database ---
DATABASE_URL = os.environ.get("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.environ.get("DATABASE_NAME", "sports_booking")

# --- Slot catalog ---
DEFAULT_SLOTS: Tuple[str, ...] = (
    "08:00 - 09:00",
    "09:00 - 10:00",
    "10:00 - 11:00",
    "11:00 - 12:00",
    "12:00 - 13:00",
    "13:00 - 14:00",
    "14:00 - 15:00",
    "15:00 - 16:00",
    "16:00 - 17:00",
    "17:00 - 18:00",
)


def _load_slot_catalog() -> Tuple[str, ...]:
    raw = os.environ.get("SLOT_CATALOG")
    if not raw:
        return DEFAULT_SLOTS
    slots = tuple(s.strip() for s in raw.split(",") if s.strip())
    if not slots:
        logger.warning("SLOT_CATALOG is empty after parsing. Using default catalog.")
        return DEFAULT_SLOTS
    return slots


SLOT_CATALOG: Tuple[str, ...] = _load_slot_catalog()

# --- Booking rules ---
BOOKING_TIMEZONE = os.environ.get("BOOKING_TIMEZONE", "UTC")
COACH_WINDOW_DAYS = int(os.environ.get("COACH_WINDOW_DAYS", "7"))
# a lost slot claim held by a booking still being written is retried this often
CLAIM_ATTEMPTS = int(os.environ.get("CLAIM_ATTEMPTS", "5"))
CLAIM_RETRY_DELAY = float(os.environ.get("CLAIM_RETRY_DELAY", "0.05"))
RATING_MIN = 1
RATING_MAX = 5

# --- Verification artifacts ---
ARTIFACT_BASE_URL = os.environ.get("ARTIFACT_BASE_URL", "https://files.example.com/verification").rstrip("/")

# --- Server ---
PORT = int(os.environ.get("PORT", "8000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
