"""
Small helpers shared by the services: filter normalization, currency codes, month arithmetic.
"""
import calendar
import datetime

from errors import ValidationError


def as_set(value, cast=None):
    """
    Normalize a filter that may arrive as a scalar, a list or a comma separated string.
    Returns None when the filter is absent so callers can skip it entirely.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    elif isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    else:
        items = [value]

    items = [item for item in items if item is not None and item != ""]
    if not items:
        return None
    if cast is not None:
        try:
            items = [cast(item) for item in items]
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid filter value: {value!r}")
    return set(items)


def normalize_currency(currency) -> str:
    if not currency or not str(currency).strip():
        raise ValidationError("Currency is required")
    code = str(currency).strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError(f"Invalid currency code: {currency}")
    return code


def check_year(year: int):
    if not datetime.MINYEAR <= year < datetime.MAXYEAR:
        raise ValidationError(f"Invalid year: {year}")


def month_bounds(year: int, month: int):
    """[first day, first day of next month) for a calendar month."""
    check_year(year)
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {month}")
    start = datetime.date(year, month, 1)
    days = calendar.monthrange(year, month)[1]
    return start, start + datetime.timedelta(days=days)


def shift_month(year: int, month: int, delta: int):
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def merge_filter(*values):
    """Join the values of `status` and `status[]` style query params; None when both are empty."""
    merged = [item for value in values if value for item in value]
    return merged or None


def utcnow() -> datetime.datetime:
    """Current UTC time as a naive datetime, the form stored in DateTime columns."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
