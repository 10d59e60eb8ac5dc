"""
API integration tests — mocks all DB calls at the streak_tracker.main import level.
Runs without a live Supabase connection.
"""
import uuid
from datetime import date
from unittest.mock import MagicMock, patch
import pytest
from fastapi.testclient import TestClient

from streak_tracker.engine.streak import StreakState, initialize

TODAY = date(2024, 1, 4)


@pytest.fixture
def app_client():
    """
    Patches every DB function imported by streak_tracker.main so no real
    Supabase calls are made, and pins the request clock to TODAY.
    Yields a dict with the TestClient and key mock handles.
    """
    patches = {
        "get_client": patch("streak_tracker.main.get_client"),
        "get_or_create_streak_record": patch("streak_tracker.main.get_or_create_streak_record"),
        "update_streak_record": patch("streak_tracker.main.update_streak_record"),
    }
    started = {k: p.start() for k, p in patches.items()}

    started["get_client"].return_value = MagicMock()
    started["get_or_create_streak_record"].return_value = initialize()

    from streak_tracker.main import app, today
    app.dependency_overrides[today] = lambda: TODAY
    with TestClient(app, raise_server_exceptions=False) as c:
        yield {"client": c, **started}

    app.dependency_overrides.clear()
    for p in patches.values():
        p.stop()


def _auth(user_id=None):
    return {"Authorization": f"Bearer {user_id or uuid.uuid4()}"}


def _three_day_state(last=date(2024, 1, 3)):
    return StreakState(
        current_streak=3,
        highest_streak=3,
        last_completion_date=last,
        completed_dates=(date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)),
    )


# ── Health ────────────────────────────────────────────────────────────────────

class TestHealth:
    def test_health_ok(self, app_client):
        res = app_client["client"].get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "ok"

    def test_health_db_down(self, app_client):
        app_client["get_client"].side_effect = RuntimeError("no db")
        res = app_client["client"].get("/health")
        assert res.status_code == 503


# ── Auth ──────────────────────────────────────────────────────────────────────

class TestAuth:
    def test_missing_header(self, app_client):
        res = app_client["client"].get("/api/streak")
        assert res.status_code == 422

    def test_non_bearer_header(self, app_client):
        res = app_client["client"].get("/api/streak", headers={"Authorization": "Basic abc"})
        assert res.status_code == 401

    def test_empty_bearer_token(self, app_client):
        res = app_client["client"].get("/api/streak", headers={"Authorization": "Bearer   "})
        assert res.status_code == 401


# ── Summary ───────────────────────────────────────────────────────────────────

class TestStreakSummary:
    def test_new_user_gets_default_state(self, app_client):
        user_id = str(uuid.uuid4())
        res = app_client["client"].get("/api/streak", headers=_auth(user_id))
        assert res.status_code == 200
        body = res.json()
        assert body["status"] == "not_started"
        assert body["current_streak"] == 0
        assert body["message"] == "Start your streak by completing a task today!"
        assert body["state"] == initialize().to_dict()
        app_client["get_or_create_streak_record"].assert_called_once()
        assert app_client["get_or_create_streak_record"].call_args.args[1] == user_id

    def test_yesterday_completion_is_at_risk(self, app_client):
        app_client["get_or_create_streak_record"].return_value = _three_day_state()
        body = app_client["client"].get("/api/streak", headers=_auth()).json()
        assert body["at_risk"] is True
        assert body["completed_today"] is False
        assert body["status"] == "at_risk"
        assert body["current_streak"] == 3
        assert body["message"] == "Complete a task today to keep your streak!"

    def test_stale_streak_reads_as_zero(self, app_client):
        app_client["get_or_create_streak_record"].return_value = _three_day_state(last=date(2024, 1, 2))
        body = app_client["client"].get("/api/streak", headers=_auth()).json()
        assert body["current_streak"] == 0
        assert body["highest_streak"] == 3
        assert body["at_risk"] is False
        assert body["status"] == "broken"
        assert body["message"] == "Highest streak: 3 days"

    def test_malformed_stored_date_is_422(self, app_client):
        app_client["get_or_create_streak_record"].side_effect = (
            lambda db, uid: StreakState.from_dict({"completedDates": ["garbage"]})
        )
        res = app_client["client"].get("/api/streak", headers=_auth())
        assert res.status_code == 422
        assert "garbage" in res.json()["detail"]


# ── Completions ───────────────────────────────────────────────────────────────

class TestCompletions:
    def test_first_completion_recorded(self, app_client):
        user_id = str(uuid.uuid4())
        res = app_client["client"].post(
            "/api/streak/completions", json={"task_id": "t1", "completed": True}, headers=_auth(user_id),
        )
        assert res.status_code == 200
        body = res.json()
        assert body["status"] == "recorded"
        assert body["new_streak"] == 1
        assert body["milestone"] is False
        assert body["state"]["completedDates"] == ["2024-01-04"]

        app_client["update_streak_record"].assert_called_once()
        _, saved_user, saved_state = app_client["update_streak_record"].call_args.args
        assert saved_user == user_id
        assert saved_state.last_completion_date == TODAY

    def test_extending_streak_is_milestone(self, app_client):
        app_client["get_or_create_streak_record"].return_value = _three_day_state()
        body = app_client["client"].post(
            "/api/streak/completions", json={"completed": True}, headers=_auth(),
        ).json()
        assert body["new_streak"] == 4
        assert body["milestone"] is True
        assert body["state"]["highestStreak"] == 4

    def test_second_completion_same_day_is_noop(self, app_client):
        state = StreakState(1, 1, TODAY, (TODAY,))
        app_client["get_or_create_streak_record"].return_value = state
        body = app_client["client"].post(
            "/api/streak/completions", json={"completed": True}, headers=_auth(),
        ).json()
        assert body["status"] == "already_completed"
        assert body["new_streak"] is None
        assert body["state"] == state.to_dict()
        app_client["update_streak_record"].assert_not_called()

    def test_uncompleting_a_task_does_not_touch_streak(self, app_client):
        res = app_client["client"].post(
            "/api/streak/completions", json={"task_id": "t1", "completed": False}, headers=_auth(),
        )
        assert res.status_code == 200
        assert res.json()["status"] == "ignored"
        app_client["get_or_create_streak_record"].assert_not_called()
        app_client["update_streak_record"].assert_not_called()

    def test_extra_fields_ignored(self, app_client):
        res = app_client["client"].post(
            "/api/streak/completions",
            json={"completed": True, "title": "should be silently dropped"},
            headers=_auth(),
        )
        assert res.status_code == 200

    def test_task_id_too_long_rejected(self, app_client):
        res = app_client["client"].post(
            "/api/streak/completions", json={"task_id": "x" * 201}, headers=_auth(),
        )
        assert res.status_code == 422

    def test_store_failure_surfaces_as_500(self, app_client):
        app_client["update_streak_record"].side_effect = RuntimeError("write failed")
        res = app_client["client"].post(
            "/api/streak/completions", json={"completed": True}, headers=_auth(),
        )
        assert res.status_code == 500


# ── Calendar ──────────────────────────────────────────────────────────────────

class TestCalendar:
    def test_defaults_to_current_month(self, app_client):
        app_client["get_or_create_streak_record"].return_value = _three_day_state()
        res = app_client["client"].get("/api/streak/calendar", headers=_auth())
        assert res.status_code == 200
        body = res.json()
        assert body["month"] == "2024-01"
        assert body["label"] == "January 2024"
        assert body["first_weekday_offset"] == 1
        assert body["prev_month"] == "2023-12"
        assert body["next_month"] == "2024-02"
        assert len(body["days"]) == 31
        completed = [d["day_of_month"] for d in body["days"] if d["is_completed"]]
        assert completed == [1, 2, 3]
        assert [d["day_of_month"] for d in body["days"] if d["is_today"]] == [4]

    def test_explicit_leap_february(self, app_client):
        res = app_client["client"].get("/api/streak/calendar?month=2024-02", headers=_auth())
        assert res.status_code == 200
        assert len(res.json()["days"]) == 29

    def test_badly_shaped_month_rejected(self, app_client):
        res = app_client["client"].get("/api/streak/calendar?month=Feb-2024", headers=_auth())
        assert res.status_code == 422

    def test_out_of_range_month_rejected(self, app_client):
        res = app_client["client"].get("/api/streak/calendar?month=2024-13", headers=_auth())
        assert res.status_code == 422

    def test_last_representable_month_has_no_next(self, app_client):
        res = app_client["client"].get("/api/streak/calendar?month=9999-12", headers=_auth())
        assert res.status_code == 200
        body = res.json()
        assert body["month"] == "9999-12"
        assert body["prev_month"] == "9999-11"
        assert body["next_month"] is None
        assert len(body["days"]) == 31

    def test_first_representable_month_has_no_prev(self, app_client):
        res = app_client["client"].get("/api/streak/calendar?month=0001-01", headers=_auth())
        assert res.status_code == 200
        body = res.json()
        assert body["month"] == "0001-01"
        assert body["prev_month"] is None
        assert body["next_month"] == "0001-02"
        assert body["first_weekday_offset"] == 1
