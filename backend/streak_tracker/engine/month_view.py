"""
Month calendar projection — read-only view over completed dates.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator

from .dates import ValidationError, as_date, format_date, parse_month, unique_dates

WEEKDAY_HEADERS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


@dataclass(frozen=True)
class CalendarDay:
    date: date
    day_of_month: int
    is_today: bool
    is_completed: bool

    @property
    def formatted_date(self) -> str:
        return format_date(self.date)

    def to_dict(self) -> dict:
        return {
            "date": self.formatted_date,
            "day_of_month": self.day_of_month,
            "is_today": self.is_today,
            "is_completed": self.is_completed,
        }


class MonthView:
    """
    Days of one month, generated fresh on every iteration.
    first_weekday_offset is the number of blank cells before the 1st in a
    Sunday-first 7-column grid.
    """

    def __init__(self, first_day: date, completed: frozenset[date], today: date):
        self.first_day = first_day
        self._completed = completed
        self._today = today

    @property
    def year(self) -> int:
        return self.first_day.year

    @property
    def month(self) -> int:
        return self.first_day.month

    @property
    def first_weekday_offset(self) -> int:
        # date.weekday() is Monday=0; the grid starts on Sunday
        return (self.first_day.weekday() + 1) % 7

    @property
    def label(self) -> str:
        return f"{calendar.month_name[self.month]} {self.year}"

    def __len__(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    def __iter__(self) -> Iterator[CalendarDay]:
        for offset in range(len(self)):
            day = self.first_day + timedelta(days=offset)
            yield CalendarDay(
                date=day,
                day_of_month=day.day,
                is_today=day == self._today,
                is_completed=day in self._completed,
            )


def build_month_view(
    completed_dates: Iterable[str | date],
    month: str | date,
    now: date | datetime,
) -> MonthView:
    first_day = parse_month(month)
    return MonthView(first_day, frozenset(unique_dates(completed_dates)), as_date(now))


def month_key(day: date) -> str:
    """``YYYY-MM`` for the month containing day, zero-padded for any year."""
    return f"{day.year:04d}-{day.month:02d}"


def shift_month(month: str | date, delta: int) -> date:
    """First day of the month delta months away (negative goes back)."""
    first_day = parse_month(month)
    index = first_day.year * 12 + (first_day.month - 1) + delta
    year = index // 12
    if not date.min.year <= year <= date.max.year:
        raise ValidationError(f"{delta:+d} months from {month_key(first_day)} is out of range")
    return date(year, index % 12 + 1, 1)
