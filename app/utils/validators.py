"""Custom validation utilities."""

import math
import re
from datetime import UTC, datetime

_VEHICLE_NUMBER_RE = re.compile(r"^[A-Z]{2}\d{1,2}[A-Z]{0,3}\d{1,4}$")


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive values are taken to already be UTC (that is how they come back
    from databases that do not store offsets).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def billable_hours(start: datetime, end: datetime) -> int:
    """Whole hours charged for a window, rounding any part-hour up.

    Args:
        start: Window start
        end: Window end

    Returns:
        int: At least 1
    """
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(1, math.ceil(seconds / 3600))


def normalize_vehicle_number(number: str) -> str:
    """Normalize a registration plate to ``KA01AB1234`` form."""
    return re.sub(r"[\s\-]", "", number).upper()


def validate_vehicle_number(number: str) -> bool:
    """Validate an Indian vehicle registration number.

    Accepted formats (spaces and dashes ignored):
    - KA 01 AB 1234
    - DL-3C-1234
    - MH12DE1433

    Args:
        number: Registration number to validate

    Returns:
        bool: True if valid format
    """
    return bool(_VEHICLE_NUMBER_RE.match(normalize_vehicle_number(number)))


def mask_reference(data: str, visible_chars: int = 6) -> str:
    """Mask a payment reference for logs, showing only the last few characters."""
    if len(data) <= visible_chars:
        return "*" * len(data)

    masked_length = len(data) - visible_chars
    return "*" * masked_length + data[-visible_chars:]
