# backend/artschool/date_utils.py
from datetime import datetime, date, timezone
from typing import Optional, Union

DATE_FORMAT = "%Y-%m-%d"


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the store keeps naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive input is returned as is."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(s: Union[str, date, None]) -> Optional[date]:
    """Parse a yyyy-mm-dd string into a date, or return None for falsy input."""
    if s is None or s == "":
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    try:
        return datetime.strptime(s, DATE_FORMAT).date()
    except ValueError:
        # allow full ISO timestamps such as "2024-03-01T00:00:00Z"
        try:
            return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
        except ValueError:
            raise ValueError(f"Invalid date format, expected YYYY-MM-DD: {s!r}") from None


def is_valid_range(start: Optional[datetime], end: Optional[datetime]) -> bool:
    """True when both ends are set and end is strictly after start."""
    return start is not None and end is not None and start < end


def age_on(birth: date, today: Optional[date] = None) -> int:
    """Age in calendar years, counting only the year part."""
    today = today or utcnow().date()
    return today.year - birth.year
