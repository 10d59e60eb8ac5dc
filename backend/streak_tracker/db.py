import os
import logging
import threading
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator
from supabase import create_client, Client

from .engine.streak import StreakState, initialize

logger = logging.getLogger(__name__)

STREAK_TABLE = "streak_records"
PAGE_SIZE = 1000  # Supabase row limit per request

# user_id -> [lock, number of callers holding or waiting on it]
_user_locks: dict[str, list] = {}
_user_locks_guard = threading.Lock()


@lru_cache(maxsize=1)
def get_client() -> Client:
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_KEY"]
    return create_client(url, key)


@contextmanager
def user_lock(user_id: str) -> Iterator[None]:
    """
    Hold the per-user lock around the read-modify-write of a completion.
    The entry is dropped once its last caller leaves, so idle users cost nothing.
    """
    with _user_locks_guard:
        entry = _user_locks.setdefault(user_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _user_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                del _user_locks[user_id]


def _row_to_state(row: dict) -> StreakState:
    return StreakState.from_dict({
        "currentStreak": row.get("current_streak"),
        "highestStreak": row.get("highest_streak"),
        "lastCompletionDate": row.get("last_completion_date"),
        "completedDates": row.get("completed_dates"),
    })


def _state_to_row(state: StreakState) -> dict:
    data = state.to_dict()
    return {
        "current_streak": data["currentStreak"],
        "highest_streak": data["highestStreak"],
        "last_completion_date": data["lastCompletionDate"],
        "completed_dates": data["completedDates"],
    }


def fetch_streak_record(db: Client, user_id: str) -> StreakState | None:
    if not user_id:
        raise ValueError("user_id is required to fetch a streak record")
    try:
        res = db.table(STREAK_TABLE).select("*").eq("user_id", user_id).limit(1).execute()
    except Exception as e:
        logger.error("Error fetching streak record for %s...: %s", user_id[:8], e)
        raise
    return _row_to_state(res.data[0]) if res.data else None


def create_streak_record(db: Client, user_id: str, state: StreakState) -> StreakState:
    if not user_id:
        raise ValueError("user_id is required to create a streak record")
    try:
        res = db.table(STREAK_TABLE).insert({"user_id": user_id, **_state_to_row(state)}).execute()
    except Exception as e:
        logger.error("Error creating streak record for %s...: %s", user_id[:8], e)
        raise
    return _row_to_state(res.data[0]) if res.data else state


def update_streak_record(db: Client, user_id: str, state: StreakState) -> StreakState:
    if not user_id:
        raise ValueError("user_id is required to update a streak record")
    try:
        res = db.table(STREAK_TABLE).update(_state_to_row(state)).eq("user_id", user_id).execute()
    except Exception as e:
        logger.error("Error updating streak record for %s...: %s", user_id[:8], e)
        raise
    return _row_to_state(res.data[0]) if res.data else state


def get_or_create_streak_record(db: Client, user_id: str) -> StreakState:
    existing = fetch_streak_record(db, user_id)
    if existing is not None:
        return existing
    logger.info("Creating streak record for %s...", user_id[:8])
    return create_streak_record(db, user_id, initialize())


def list_streak_user_ids(db: Client) -> list[str]:
    """All user ids with a streak record, fetched in pages."""
    user_ids: list[str] = []
    offset = 0
    while True:
        res = (
            db.table(STREAK_TABLE)
            .select("user_id")
            .order("user_id")
            .range(offset, offset + PAGE_SIZE - 1)
            .execute()
        )
        batch = res.data or []
        user_ids.extend(row["user_id"] for row in batch)
        if len(batch) < PAGE_SIZE:
            break
        offset += PAGE_SIZE
    return user_ids
