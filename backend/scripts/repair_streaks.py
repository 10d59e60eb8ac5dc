"""
Repair stored streak records.

Deduplicates completed_dates, re-adds a missing last completion date,
recomputes current_streak against today and restores
highest_streak >= current_streak. Safe to run multiple times (idempotent).

Usage:
    cd backend
    SUPABASE_URL=... SUPABASE_SERVICE_KEY=... python scripts/repair_streaks.py [user_id ...]

With no user ids every record in streak_records is checked. A .env file in
the working directory is loaded first. Pass --dry-run to only report.
"""
import argparse
import os
import sys
from datetime import date

from dotenv import load_dotenv

# Add project root to path so we can import engine modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from streak_tracker.db import (
    get_client, fetch_streak_record, list_streak_user_ids, update_streak_record, user_lock,
)
from streak_tracker.engine.streak import normalize


def repair_user(db, user_id: str, today: date, dry_run: bool) -> bool:
    """Return True if the stored record needed a change."""
    with user_lock(user_id):
        state = fetch_streak_record(db, user_id)
        if state is None:
            print(f"  {user_id[:8]}...: no record")
            return False
        fixed = normalize(state, today)
        if fixed == state:
            return False
        print(
            f"  {user_id[:8]}...: streak {state.current_streak} -> {fixed.current_streak}, "
            f"best {state.highest_streak} -> {fixed.highest_streak}, "
            f"dates {len(state.completed_dates)} -> {len(fixed.completed_dates)}"
        )
        if not dry_run:
            update_streak_record(db, user_id, fixed)
        return True


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Repair stored streak records")
    parser.add_argument("user_ids", nargs="*", help="limit to these users")
    parser.add_argument("--dry-run", action="store_true", help="report without writing")
    args = parser.parse_args(argv)

    load_dotenv()
    db = get_client()
    user_ids = args.user_ids or list_streak_user_ids(db)
    today = date.today()

    print(f"Checking {len(user_ids)} streak records...")
    changed = sum(repair_user(db, uid, today, args.dry_run) for uid in user_ids)
    verb = "would repair" if args.dry_run else "repaired"
    print(f"Done: {verb} {changed} of {len(user_ids)} records")
    return 0


if __name__ == "__main__":
    sys.exit(main())
