"""
Task Streak Tracker — FastAPI backend
"""
import logging
import os
from datetime import date
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .db import (
    get_client, get_or_create_streak_record, update_streak_record, user_lock,
)
from .engine.dates import ValidationError, format_date
from .engine.month_view import WEEKDAY_HEADERS, build_month_view, month_key, shift_month
from .engine.streak import (
    StreakState, has_completed_today, is_at_risk,
    record_completion, refresh, streak_status,
)
from .models import TaskCompletion

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title="Task Streak Tracker API")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

ALLOWED_ORIGINS = [
    o.strip()
    for o in os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(ValidationError)
def _validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.get("/health")
def health():
    try:
        db = get_client()
        db.table("streak_records").select("user_id").limit(1).execute()
        return {"status": "ok", "db": "ok"}
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
        raise HTTPException(status_code=503, detail="DB unavailable")


# ── Dependencies ──────────────────────────────────────────────────────────────

def get_user_id(authorization: str = Header(...)) -> str:
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    user_id = authorization.removeprefix("Bearer ").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Empty Bearer token")
    return user_id


def today() -> date:
    """Clock for every request; overridden in tests."""
    return date.today()


# ── Streak summary ────────────────────────────────────────────────────────────

@app.get("/api/streak")
def get_streak(user_id: str = Depends(get_user_id), now: date = Depends(today)):
    db = get_client()
    stored = get_or_create_streak_record(db, user_id)
    state = refresh(stored, now)
    status = streak_status(state, now)
    return {
        "state": state.to_dict(),
        "status": status.value,
        "current_streak": state.current_streak,
        "highest_streak": state.highest_streak,
        "completed_today": has_completed_today(state, now),
        "at_risk": is_at_risk(state, now),
        "message": _streak_message(stored, now),
    }


# ── Task completions ──────────────────────────────────────────────────────────

@app.post("/api/streak/completions", status_code=200)
@limiter.limit("60/minute")
def complete_task(
    request: Request,
    body: TaskCompletion,
    user_id: str = Depends(get_user_id),
    now: date = Depends(today),
):
    # Un-marking a task never takes streak credit back.
    if not body.completed:
        return {"status": "ignored"}

    db = get_client()
    with user_lock(user_id):
        state = get_or_create_streak_record(db, user_id)
        result = record_completion(state, now)
        if result.recorded:
            update_streak_record(db, user_id, result.state)

    if not result.recorded:
        return {
            "status": "already_completed",
            "new_streak": None,
            "milestone": False,
            "state": result.state.to_dict(),
        }

    logger.info("Completion for %s... on %s: streak %d (best %d)",
                user_id[:8], format_date(now), result.new_streak, result.state.highest_streak)
    return {
        "status": "recorded",
        "new_streak": result.new_streak,
        "milestone": result.is_milestone,
        "state": result.state.to_dict(),
    }


# ── Calendar ──────────────────────────────────────────────────────────────────

@app.get("/api/streak/calendar")
def get_calendar(
    month: Optional[str] = Query(default=None, pattern=r"^\d{4}-\d{2}$"),
    user_id: str = Depends(get_user_id),
    now: date = Depends(today),
):
    db = get_client()
    state = get_or_create_streak_record(db, user_id)
    view = build_month_view(state.completed_dates, month or now, now)
    return {
        "month": month_key(view.first_day),
        "label": view.label,
        "weekdays": WEEKDAY_HEADERS,
        "first_weekday_offset": view.first_weekday_offset,
        "prev_month": _neighbour_month(view.first_day, -1),
        "next_month": _neighbour_month(view.first_day, 1),
        "days": [day.to_dict() for day in view],
    }


# ── Helpers ───────────────────────────────────────────────────────────────────

def _neighbour_month(first_day: date, delta: int) -> str | None:
    """Adjacent month key, or None past the first or last representable month."""
    try:
        return month_key(shift_month(first_day, delta))
    except ValidationError:
        return None


def _streak_message(stored: StreakState, now: date) -> str:
    """Dashboard line built from the stored counters, before any decay on read."""
    if stored.current_streak == 0:
        return "Start your streak by completing a task today!"
    if has_completed_today(stored, now):
        return "You've completed a task today!"
    if is_at_risk(stored, now):
        return "Complete a task today to keep your streak!"
    return f"Highest streak: {stored.highest_streak} days"
