"""
Streak tracking — pure functions, no DB access.

Every call takes ``now`` explicitly; nothing here reads the system clock.
"""
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Optional

from .dates import (
    ONE_DAY, ValidationError, as_date, format_date, parse_date,
    parse_optional_date, unique_dates,
)


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    highest_streak: int = 0
    last_completion_date: Optional[date] = None
    completed_dates: tuple[date, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentStreak": self.current_streak,
            "highestStreak": self.highest_streak,
            "lastCompletionDate": (
                format_date(self.last_completion_date) if self.last_completion_date else None
            ),
            "completedDates": [format_date(d) for d in self.completed_dates],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StreakState":
        """
        Build a state from its stored JSON shape.
        Missing fields fall back to the defaults of a fresh state; duplicate
        dates are kept as stored (counting de-duplicates on its own).
        """
        current = data.get("currentStreak") or 0
        highest = data.get("highestStreak") or 0
        for counter in (current, highest):
            # bool is an int subclass; a stored true must not load as 1
            if isinstance(counter, bool) or not isinstance(counter, int) or counter < 0:
                raise ValidationError("streak counters must be non-negative integers")
        return cls(
            current_streak=current,
            highest_streak=highest,
            last_completion_date=parse_optional_date(data.get("lastCompletionDate")),
            completed_dates=tuple(parse_date(d) for d in (data.get("completedDates") or [])),
        )


@dataclass(frozen=True)
class CompletionResult:
    state: StreakState
    new_streak: Optional[int]   # None when today was already recorded

    @property
    def recorded(self) -> bool:
        return self.new_streak is not None

    @property
    def is_milestone(self) -> bool:
        return self.new_streak is not None and self.new_streak > 1


class StreakStatus(str, Enum):
    NOT_STARTED = "not_started"
    COMPLETED_TODAY = "completed_today"
    AT_RISK = "at_risk"
    BROKEN = "broken"


def initialize() -> StreakState:
    return StreakState()


def has_completed_today(state: StreakState, now: date | datetime) -> bool:
    return state.last_completion_date == as_date(now)


def is_at_risk(state: StreakState, now: date | datetime) -> bool:
    """
    True only when the streak is alive but today's completion is still missing.
    A streak whose last day is two or more days back is broken, not at risk.
    """
    if state.current_streak <= 0 or state.last_completion_date is None:
        return False
    return state.last_completion_date == as_date(now) - ONE_DAY


def compute_streak(
    completed_dates: Iterable[str | date],
    reference_date: str | date | None,
    now: date | datetime,
) -> int:
    """
    Count consecutive days ending at reference_date.
    Staleness is judged against now, not reference_date: if reference_date is
    neither today nor yesterday the streak has lapsed and the count is 0.
    """
    days = unique_dates(completed_dates)
    last = parse_optional_date(reference_date)
    if last is None or not days:
        return 0

    today = as_date(now)
    if last not in (today, today - ONE_DAY):
        return 0

    streak = 1
    cursor = last - ONE_DAY
    while cursor in days:
        streak += 1
        cursor -= ONE_DAY
    return streak


def record_completion(state: StreakState, now: date | datetime) -> CompletionResult:
    """
    Apply the first completion of the day.
    Returns a no-op result (new_streak=None) if today is already recorded.
    """
    if has_completed_today(state, now):
        return CompletionResult(state=state, new_streak=None)

    today = as_date(now)
    completed = state.completed_dates
    if today not in completed:
        completed = completed + (today,)

    new_streak = compute_streak(completed, today, today)
    updated = StreakState(
        current_streak=new_streak,
        highest_streak=max(state.highest_streak, new_streak),
        last_completion_date=today,
        completed_dates=completed,
    )
    return CompletionResult(state=updated, new_streak=new_streak)


def refresh(state: StreakState, now: date | datetime) -> StreakState:
    """Recompute current_streak against now so a lapsed streak reads as 0."""
    current = compute_streak(state.completed_dates, state.last_completion_date, now)
    if current == state.current_streak:
        return state
    return replace(state, current_streak=current, highest_streak=max(state.highest_streak, current))


def streak_status(state: StreakState, now: date | datetime) -> StreakStatus:
    if has_completed_today(state, now):
        return StreakStatus.COMPLETED_TODAY
    if is_at_risk(state, now):
        return StreakStatus.AT_RISK
    if state.last_completion_date is None:
        return StreakStatus.NOT_STARTED
    return StreakStatus.BROKEN


def normalize(state: StreakState, now: date | datetime) -> StreakState:
    """
    Repair a stored state: dedupe and sort dates, make sure the last
    completion is among them, and restore highest >= current.
    """
    days = set(state.completed_dates)
    last = state.last_completion_date
    if last is not None:
        days.add(last)
    elif days:
        last = max(days)
    completed = tuple(sorted(days))
    current = compute_streak(completed, last, now)
    return StreakState(
        current_streak=current,
        highest_streak=max(state.highest_streak, current),
        last_completion_date=last,
        completed_dates=completed,
    )
