"""
Input validation functions for engine parameters.

All validators raise ValidationError on invalid input.
"""

from datetime import date, datetime
from typing import Optional, Tuple

from profit_engine.exceptions import ValidationError

VALID_GRANULARITIES = ("daily", "weekly", "monthly")
VALID_STATUS_FILTERS = ("all", "unfulfilled", "partial", "fulfilled", "cancelled", "refunded")
VALID_SORT_FIELDS = ("revenue", "profit", "items", "status", "createdAt")
VALID_SORT_ORDERS = ("asc", "desc")

# Accepted spellings for sort fields
SORT_FIELD_ALIASES = {
    "created_at": "createdAt",
    "createdat": "createdAt",
    "date": "createdAt",
    "orders": "items",
}


def validate_date_string(
    value: str,
    field: str = "date",
    format: str = "%Y-%m-%d"
) -> date:
    """
    Validate and parse a date string.

    Args:
        value: Date string to validate
        field: Field name for error messages
        format: Expected date format (default: YYYY-MM-DD)

    Returns:
        Parsed date object

    Raises:
        ValidationError: If date is invalid or in wrong format
    """
    if not value:
        raise ValidationError(field, "Date is required", value)

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    try:
        return datetime.strptime(value, format).date()
    except ValueError:
        raise ValidationError(
            field,
            f"Invalid date format. Expected {format}",
            value
        )


def validate_window(
    start: Optional[date],
    end: Optional[date]
) -> Tuple[date, date]:
    """
    Validate reporting window bounds.

    Args:
        start: First day of the window (inclusive)
        end: Last day of the window (inclusive)

    Returns:
        Tuple of (start, end)

    Raises:
        ValidationError: If a bound is missing or the window is inverted
    """
    if start is None or end is None:
        raise ValidationError("window", "Both start and end dates are required")

    if not isinstance(start, date) or not isinstance(end, date):
        raise ValidationError("window", "Bounds must be dates", (start, end))

    if start > end:
        raise ValidationError(
            "window",
            "Start date must be before or equal to end date",
            f"{start.isoformat()} to {end.isoformat()}"
        )

    return start, end


def validate_granularity(value: Optional[str], field: str = "granularity") -> str:
    """
    Validate a P&L bucket granularity.

    Raises:
        ValidationError: If granularity is not daily, weekly or monthly
    """
    if value is None or value == "":
        raise ValidationError(field, "Granularity is required")

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    normalized = value.lower().strip()
    if normalized not in VALID_GRANULARITIES:
        raise ValidationError(
            field,
            f"Must be one of: {', '.join(VALID_GRANULARITIES)}",
            value
        )

    return normalized


def validate_page_size(
    value: Optional[int],
    default: int,
    max_value: int,
    field: str = "page_size"
) -> int:
    """
    Validate and cap a page size.

    None falls back to the default, zero is raised to 1 and values above
    max_value are capped. Negative or non-integer sizes are rejected.

    Raises:
        ValidationError: If page size is negative or not an integer
    """
    if value is None:
        return default

    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "Must be an integer", value)

    if value < 0:
        raise ValidationError(field, "Must not be negative", value)

    return min(max(value, 1), max_value)


def validate_page(value: Optional[int], field: str = "page") -> int:
    """
    Validate a 1-indexed page number.

    Out-of-range pages are clamped later against the result size; only
    non-integers are rejected here.
    """
    if value is None:
        return 1

    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "Must be an integer", value)

    return value


def validate_status_filter(value: Optional[str], field: str = "status") -> str:
    """
    Validate an orders status filter.

    Raises:
        ValidationError: If status is not a known filter
    """
    if value is None or value == "":
        return "all"

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    normalized = value.lower().strip()
    if normalized not in VALID_STATUS_FILTERS:
        raise ValidationError(
            field,
            f"Must be one of: {', '.join(VALID_STATUS_FILTERS)}",
            value
        )

    return normalized


def validate_sort_by(value: Optional[str], field: str = "sort_by") -> str:
    """
    Validate an orders sort field.

    Raises:
        ValidationError: If the sort field is unknown
    """
    if value is None or value == "":
        return "createdAt"

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    stripped = value.strip()
    normalized = SORT_FIELD_ALIASES.get(stripped.lower(), stripped)
    if normalized not in VALID_SORT_FIELDS:
        raise ValidationError(
            field,
            f"Must be one of: {', '.join(VALID_SORT_FIELDS)}",
            value
        )

    return normalized


def validate_sort_order(value: Optional[str], field: str = "sort_order") -> str:
    """Validate a sort direction (asc/desc, default desc)."""
    if value is None or value == "":
        return "desc"

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    normalized = value.lower().strip()
    if normalized not in VALID_SORT_ORDERS:
        raise ValidationError(field, "Must be 'asc' or 'desc'", value)

    return normalized
