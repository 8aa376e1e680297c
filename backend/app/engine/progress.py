"""
Progress statistics: pure functions over session and quiz rows, no DB access.
"""
from datetime import date, datetime, timedelta

from .streak import local_today


def percent(part: int, whole: int) -> int:
    return round(100 * part / whole) if whole > 0 else 0


def subject_progress(subjects: list[dict], sessions: list[dict]) -> list[dict]:
    """Completed vs scheduled sessions per subject, in the order subjects are given."""
    totals: dict[str, int] = {}
    completed: dict[str, int] = {}
    for s in sessions:
        sid = s.get("subject_id")
        totals[sid] = totals.get(sid, 0) + 1
        if s.get("is_completed"):
            completed[sid] = completed.get(sid, 0) + 1

    rows = []
    for subject in subjects:
        sid = subject["id"]
        done = completed.get(sid, 0)
        total = totals.get(sid, 0)
        rows.append({
            "subject_id": sid,
            "name": subject.get("name", ""),
            "color": subject.get("color"),
            "completed": done,
            "total": total,
            "pct": percent(done, total),
        })
    return rows


def completion_day(completed_at: str | None, tz_name: str | None) -> date | None:
    """Local calendar day of a completed_at timestamp, or None if it is missing or unparseable."""
    if not completed_at:
        return None
    try:
        moment = datetime.fromisoformat(completed_at.replace("Z", "+00:00"))
    except ValueError:
        return None
    return local_today(tz_name, moment)


def weekly_hours(
    sessions: list[dict], today: date, tz_name: str | None = None, days: int = 7,
) -> list[dict]:
    """
    Hours of completed study per day for the `days` days ending today (oldest first).
    A session counts on the day of its completed_at timestamp in `tz_name`,
    the same day its completion counted for the streak.
    """
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    hours = {d: 0.0 for d in window}
    for s in sessions:
        if not s.get("is_completed"):
            continue
        day = completion_day(s.get("completed_at"), tz_name)
        if day in hours:
            hours[day] += float(s.get("duration_hours") or 0)
    return [{"date": d.isoformat(), "hours": round(h, 2)} for d, h in hours.items()]


def quiz_accuracy(attempts: list[dict]) -> tuple[int, int]:
    """Returns (accuracy_percent, attempt_count)."""
    correct = sum(1 for a in attempts if a.get("is_correct"))
    return percent(correct, len(attempts)), len(attempts)
