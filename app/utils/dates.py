"""Date helpers. All datetimes are stored as naive UTC."""
from datetime import datetime, date, time, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min)


def end_of_day(value: date) -> datetime:
    return datetime.combine(value, time.max)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """Serialize a stored datetime as ISO-8601 with an explicit UTC offset."""
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()
