"""
Input validation functions for API parameters.

All validators raise ValidationError on invalid input.
"""

import re
from datetime import datetime, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.config import config
from core.exceptions import ValidationError


# Row ids are UUIDs in the backend
UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

MAX_AMOUNT = 100_000.0


def validate_id(value: Optional[str], field: str = "id") -> str:
    """
    Validate a backend row id.

    Args:
        value: Id to validate
        field: Field name for error messages

    Returns:
        The id, stripped

    Raises:
        ValidationError: If the id is missing or not a UUID
    """
    if value is None or not str(value).strip():
        raise ValidationError(field, "Id is required")

    value = str(value).strip()
    if not UUID_PATTERN.match(value):
        raise ValidationError(field, "Must be a UUID", value)

    return value


def validate_period(
    value: Optional[str],
    field: str = "period",
    allow_none: bool = True
) -> str:
    """
    Validate a dashboard period shortcut.

    Args:
        value: Period string to validate
        field: Field name for error messages
        allow_none: Whether None is allowed (defaults to '7days')

    Returns:
        Validated period string

    Raises:
        ValidationError: If period is invalid
    """
    valid_periods = set(config.dashboard.period_days)

    if value is None or value == "":
        if allow_none:
            return "7days"
        raise ValidationError(field, "Period is required")

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    value = value.lower().strip()

    if value not in valid_periods:
        raise ValidationError(
            field,
            f"Must be one of: {', '.join(sorted(valid_periods))}",
            value
        )

    return value


def validate_month(
    value: Optional[str],
    now: datetime,
    field: str = "month",
) -> Tuple[datetime, datetime]:
    """
    Parse ``YYYY-MM`` into the month's first and last instant in ``now``'s timezone.

    None means the month containing ``now``.

    Raises:
        ValidationError: If the month is malformed
    """
    if value is None or value == "":
        year, month = now.year, now.month
    else:
        match = MONTH_PATTERN.match(value.strip())
        if not match:
            raise ValidationError(field, "Invalid month format. Expected YYYY-MM", value)
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            raise ValidationError(field, "Month must be between 01 and 12", value)

    start = datetime(year, month, 1, tzinfo=now.tzinfo)
    if month == 12:
        next_month = datetime(year + 1, 1, 1, tzinfo=now.tzinfo)
    else:
        next_month = datetime(year, month + 1, 1, tzinfo=now.tzinfo)
    return start, next_month - timedelta(microseconds=1)


def validate_amount(
    value: Optional[float],
    field: str = "amount",
    max_value: float = MAX_AMOUNT,
) -> float:
    """
    Validate a money amount.

    Raises:
        ValidationError: If the amount is missing, not positive or too large
    """
    if value is None:
        raise ValidationError(field, "Amount is required")

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(field, "Must be a number", value)

    if value <= 0:
        raise ValidationError(field, "Must be greater than zero", value)

    if value > max_value:
        raise ValidationError(field, f"Cannot exceed {max_value:.2f}", value)

    return round(float(value), 2)


def validate_timezone(value: Optional[str], field: str = "timezone") -> ZoneInfo:
    """
    Resolve an IANA timezone name, falling back to DEFAULT_TIMEZONE.

    Raises:
        ValidationError: If the name is unknown
    """
    name = (value or config.dashboard.default_timezone).strip()
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(field, "Unknown timezone", value)
