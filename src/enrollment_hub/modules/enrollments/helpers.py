"""
Enrollment Shared Helpers

Small utilities shared by the service layer, the waitlist engine and the
background jobs.
"""

import math
import re
from datetime import UTC, datetime

# Student, class and teacher identifiers: 1-64 chars, no whitespace or colons
# (colons separate the topic prefix in realtime topic names).
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,63}$")


def is_valid_identifier(value: object) -> bool:
    """
    Check whether a value is a well-formed external identifier.

    Args:
        value: Candidate student/class/teacher id

    Returns:
        True if the value is a non-empty string matching IDENTIFIER_PATTERN
    """
    return isinstance(value, str) and IDENTIFIER_PATTERN.fullmatch(value) is not None


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a datetime to an aware UTC datetime.

    Some backends (SQLite) hand back naive datetimes for timezone-aware
    columns; every value stored by this service is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_offer_expired(offer_expires_at: datetime | None, now: datetime) -> bool:
    """True when an offer deadline exists and is not after ``now``."""
    expires_at = ensure_utc(offer_expires_at)
    return expires_at is not None and expires_at <= now


def wait_time_days(joined_at: datetime, now: datetime) -> float:
    """Days a student has spent on the waitlist, rounded to 0.1."""
    joined = ensure_utc(joined_at)
    return round((now - joined).total_seconds() / 86400, 1)


# Pace assumed for each queue position when nobody has waited yet
DEFAULT_DAYS_PER_POSITION = 2.5


def estimate_wait_days(position: int, average_wait_days: float) -> float:
    """
    Estimate how many more days a queued student waits for an offer.

    Each position ahead of the student (and their own) is assumed to take as
    long as the queue's current average wait, or DEFAULT_DAYS_PER_POSITION
    when that average is zero.
    """
    days_per_position = average_wait_days if average_wait_days > 0 else DEFAULT_DAYS_PER_POSITION
    return round(position * days_per_position, 1)


def describe_wait(days: float) -> str:
    """Readable form of a wait estimate: days up to a week, then weeks, then months."""
    whole_days = math.ceil(days)
    if whole_days <= 1:
        return "Less than 1 day"
    if whole_days <= 7:
        return f"{whole_days} days"
    if whole_days <= 30:
        return f"{math.ceil(whole_days / 7)} weeks"
    return f"{math.ceil(whole_days / 30)} months"


# HTTP status for each failed-result error code
ERROR_STATUS_CODES: dict[str, int] = {
    "INVALID_IDENTIFIER": 400,
    "INVALID_CAPACITY": 400,
    "INVALID_RESPONSE": 400,
    "CLASS_NOT_FOUND": 404,
    "CLASS_ARCHIVED": 409,
    "CLASS_ALREADY_EXISTS": 409,
    "DUPLICATE_ENROLLMENT": 409,
    "NO_ACTIVE_OFFER": 409,
    "NO_SEAT_AVAILABLE": 409,
    "OFFER_EXPIRED": 410,
    "STORAGE_ERROR": 503,
}


def status_code_for(error_code: str | None) -> int:
    """HTTP status for a failed operation (500 for unknown codes)."""
    return ERROR_STATUS_CODES.get(error_code or "", 500)
