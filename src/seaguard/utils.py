"""Shared utility functions."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from .errors import InputValidationError

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: date | datetime) -> datetime:
    """Normalize a date or datetime to an aware UTC datetime.

    Plain dates become midnight UTC; naive datetimes are assumed UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return as_utc(value).date()
    return value


def parse_date(value: Any, field: str) -> date:
    """Parse an ISO date (or datetime) strictly.

    Raises:
        InputValidationError: If the value is missing or malformed.
    """
    if isinstance(value, datetime):
        return as_date(value)
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise InputValidationError(field, "REQUIRED_FIELD_MISSING", f"{field} is required")
    try:
        if "T" in value:
            return as_date(datetime.fromisoformat(value.replace("Z", "+00:00")))
        return date.fromisoformat(value)
    except ValueError as e:
        raise InputValidationError(field, "INVALID_DATE", f"Invalid date format for {field}: {value}") from e


def parse_optional_date(value: Any, field: str) -> Optional[date]:
    if value in (None, ""):
        return None
    return parse_date(value, field)


def whole_days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, floored (negative when end is earlier)."""
    return int((as_utc(end) - as_utc(start)).total_seconds() // SECONDS_PER_DAY)


def age_on(date_of_birth: date, on: date) -> int:
    """Age in completed years on a given day."""
    age = on.year - date_of_birth.year
    if (on.month, on.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def parse_datetime(value: Any, field: str) -> datetime:
    """Parse an ISO date or datetime into an aware UTC datetime.

    Raises:
        InputValidationError: If the value is missing or malformed.
    """
    if isinstance(value, (datetime, date)):
        return as_utc(value)
    if not value or not isinstance(value, str):
        raise InputValidationError(field, "REQUIRED_FIELD_MISSING", f"{field} is required")
    try:
        if "T" in value:
            return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        return as_utc(date.fromisoformat(value))
    except ValueError as e:
        raise InputValidationError(field, "INVALID_DATE", f"Invalid date format for {field}: {value}") from e
