from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import config
from errors import ValidationError

SLOT_CATALOG: Sequence[str] = config.SLOT_CATALOG


def get_timezone(name: Optional[str] = None) -> ZoneInfo:
    try:
        return ZoneInfo(name or config.BOOKING_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def today(tz: Optional[str] = None) -> date:
    """Current calendar date in the facility timezone."""
    return datetime.now(get_timezone(tz)).date()


def validate_slots(requested: Iterable[str], catalog: Sequence[str] = SLOT_CATALOG) -> bool:
    """True iff every requested slot is a recognized catalog value."""
    known = set(catalog)
    return all(slot in known for slot in requested)


def invalid_slots(requested: Iterable[str], catalog: Sequence[str] = SLOT_CATALOG) -> List[str]:
    known = set(catalog)
    return [slot for slot in requested if slot not in known]


def dedupe(values: Iterable) -> list:
    """Drop repeats, keeping first-seen order."""
    seen = set()
    out = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def in_catalog_order(slots: Iterable[str], catalog: Sequence[str] = SLOT_CATALOG) -> List[str]:
    wanted = set(slots)
    ordered = [s for s in catalog if s in wanted]
    # unknown values go last, sorted
    ordered += sorted(wanted - set(catalog))
    return ordered


def parse_date(value) -> date:
    """Accepts a date, a datetime or an ISO string (YYYY-MM-DD or full timestamp)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            pass
    raise ValidationError("Invalid date, expected YYYY-MM-DD", {"date": str(value)})


def within_window(day: date, start: date, days: int) -> bool:
    return start <= day <= start + timedelta(days=days)
