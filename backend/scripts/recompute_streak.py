"""
Rebuild a user's streak record from their completed study sessions.

Replays every completion day (in the user's profile timezone) through the
streak engine from a fresh record, then writes the result with the same
compare-and-set the API uses. Safe to run multiple times (idempotent).

Usage:
    SUPABASE_URL=... SUPABASE_SERVICE_KEY=... python scripts/recompute_streak.py <user_id> [--dry-run]

A .env file in the working directory is loaded as well.
"""
import sys
from datetime import date, datetime

from dotenv import load_dotenv

from app.db import get_client, get_streak_row, streak_record_from_row, write_streak_if_unchanged
from app.engine.streak import local_today, replay_streak


PAGE_SIZE = 1000  # Supabase row limit per request


def fetch_completion_times(db, user_id: str) -> list[str]:
    """Fetch completed_at for every completed session, in pages."""
    times: list[str] = []
    offset = 0
    while True:
        res = (
            db.table("study_sessions")
            .select("completed_at")
            .eq("user_id", user_id)
            .eq("is_completed", True)
            .order("completed_at")
            .range(offset, offset + PAGE_SIZE - 1)
            .execute()
        )
        batch = res.data or []
        times.extend(row["completed_at"] for row in batch if row.get("completed_at"))
        print(f"  fetched {len(times)} completions...", end="\r")
        if len(batch) < PAGE_SIZE:
            break
        offset += PAGE_SIZE
    print(f"  fetched {len(times)} completions total          ")
    return times


def to_study_days(completion_times: list[str], tz_name: str | None) -> list[date]:
    days = []
    for ts in completion_times:
        try:
            moment = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            print(f"  skipping unparseable completed_at: {ts!r}")
            continue
        days.append(local_today(tz_name, moment))
    return days


def run(user_id: str, dry_run: bool = False):
    print(f"\nRecomputing streak for user: {user_id[:8]}...\n")

    db = get_client()
    row = get_streak_row(db, user_id)
    current = streak_record_from_row(row)
    tz_name = (row or {}).get("timezone")
    print(f"  Current: streak={current.current_streak} longest={current.longest_streak} "
          f"last={current.last_study_date} freezes={current.freeze_count}")

    days = to_study_days(fetch_completion_times(db, user_id), tz_name)
    if not days:
        print("  No completed sessions found, nothing to recompute.")
        return

    rebuilt = replay_streak(days)
    print(f"  Rebuilt: streak={rebuilt.current_streak} longest={rebuilt.longest_streak} "
          f"last={rebuilt.last_study_date} freezes={rebuilt.freeze_count}")

    if rebuilt == current:
        print("\n  Stored record already matches.")
        return

    if dry_run:
        print("\n  DRY RUN, no changes written.")
        return

    if not write_streak_if_unchanged(db, user_id, rebuilt, current.last_study_date, exists=row is not None):
        print("\n  Streak changed while recomputing, run again.")
        sys.exit(1)
    print("\n  Streak updated.\n")


if __name__ == "__main__":
    load_dotenv()
    args = [a for a in sys.argv[1:] if a != "--dry-run"]
    dry = "--dry-run" in sys.argv

    if not args:
        print("Usage: python scripts/recompute_streak.py <user_id> [--dry-run]")
        sys.exit(1)

    run(args[0], dry_run=dry)
