"""
Defensive numeric and record-access helpers.

Every numeric read in the engine goes through these functions. None of them
raise and none of them return NaN or infinity.
"""
import math
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, TypeVar

T = TypeVar("T")


def safe_number(value: Any) -> float:
    """Convert value to a finite float, mapping anything unusable to 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    if isinstance(value, Decimal):
        try:
            number = float(value)
        except ValueError:
            # Signalling NaN
            return 0.0
        return number if math.isfinite(number) else 0.0
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return 0.0
        try:
            number = float(trimmed)
        except ValueError:
            return 0.0
        return number if math.isfinite(number) else 0.0
    return 0.0


def as_record(value: Any) -> Dict[str, Any]:
    """Return value if it is a mapping, else an empty dict."""
    if isinstance(value, Mapping):
        return value  # type: ignore[return-value]
    return {}


def as_list(value: Any) -> list:
    """Return value if it is a list or tuple, else an empty list."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def first_present(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first value among keys that is not None."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return default


def first_text(*candidates: Any) -> str:
    """Return the first candidate that is a non-blank string, stripped."""
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return ""


def to_string_id(value: Any) -> str:
    """Coerce an identifier (string, number or reference record) to a string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        for key in ("id", "_id"):
            if isinstance(value.get(key), str):
                return value[key]
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def sum_by(items: Optional[Iterable[T]], getter: Callable[[T], float]) -> float:
    """Sum getter(item) over items, treating None as empty."""
    if not items:
        return 0.0
    return sum((getter(item) for item in items), 0.0)


def safe_divide(numerator: float, denominator: float) -> float:
    """Divide, returning 0 when the denominator is zero or the result is not finite."""
    if not denominator:
        return 0.0
    result = numerator / denominator
    return result if math.isfinite(result) else 0.0


def clamp_percentage(value: float) -> float:
    """Clamp a percentage to [0, 100]."""
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0.0
    return min(max(float(value), 0.0), 100.0)


def round_money(value: float, digits: int = 2) -> float:
    """Round to 2 decimals; non-finite values become 0."""
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return 0.0
    rounded = round(float(value), digits)
    # Avoid "-0.0" in serialized output
    return rounded + 0.0 if rounded != 0 else 0.0


def percentage_change(current: float, previous: float) -> float:
    """
    Percent change from previous to current.

    When previous is zero (or not finite) there is no base to compare with:
    the result is +100 for a positive current, -100 for a negative one, and
    0 when both are zero.
    """
    current = safe_number(current)
    if not isinstance(previous, (int, float)) or not math.isfinite(previous) or previous == 0:
        if current > 0:
            return 100.0
        if current < 0:
            return -100.0
        return 0.0
    change = (current - previous) / abs(previous) * 100
    return change if math.isfinite(change) else 0.0


def to_utc_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), dates (UTC midnight),
    epoch milliseconds (number or numeric string) and ISO 8601 strings.
    Returns None when the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return to_utc_datetime(float(text))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return to_utc_datetime(parsed)

    return None
