"""
Calendar-day helpers shared by the streak and calendar engines.

Dates cross every boundary as plain ``YYYY-MM-DD`` strings: no time, no zone.
"""
import re
from datetime import date, datetime, timedelta
from typing import Iterable

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")

ONE_DAY = timedelta(days=1)


class ValidationError(ValueError):
    """Raised for date input that cannot be trusted to produce a correct count."""


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        raise ValidationError(f"expected a YYYY-MM-DD date, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"invalid calendar date {value!r}: {e}") from e


def parse_optional_date(value: str | date | None) -> date | None:
    return None if value is None else parse_date(value)


def format_date(day: date) -> str:
    return day.isoformat()


def as_date(now: date | datetime) -> date:
    """Calendar day of ``now``; time-of-day is dropped, tz info is not applied."""
    if isinstance(now, datetime):
        return now.date()
    if isinstance(now, date):
        return now
    raise ValidationError(f"expected a date or datetime for now, got {now!r}")


def parse_month(value: str | date) -> date:
    """First day of the month named by a ``YYYY-MM`` string or any date in it."""
    if isinstance(value, date):
        return date(value.year, value.month, 1)
    m = ISO_MONTH_RE.match(value) if isinstance(value, str) else None
    if not m:
        raise ValidationError(f"expected a YYYY-MM month, got {value!r}")
    year, month = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12 or year < 1:
        raise ValidationError(f"invalid month {value!r}")
    return date(year, month, 1)


def unique_dates(values: Iterable[str | date]) -> set[date]:
    """Parse and de-duplicate; storage may hold the same day more than once."""
    return {parse_date(v) for v in values}
