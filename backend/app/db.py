import os
import logging
from datetime import date, datetime, timezone
from functools import lru_cache
from supabase import create_client, Client

from .engine.streak import DEFAULT_FREEZE_COUNT, StreakRecord
from .errors import StorageFailure

logger = logging.getLogger(__name__)

STREAK_COLUMNS = "current_streak, longest_streak, last_study_date, streak_freeze_count, timezone"


@lru_cache(maxsize=1)
def get_client() -> Client:
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_KEY"]
    return create_client(url, key)


def _execute(query, what: str):
    try:
        return query.execute()
    except Exception as e:
        logger.error("Store failure during %s: %s", what, e)
        raise StorageFailure(f"{what} failed") from e


def _is_unique_violation(e: Exception) -> bool:
    err_str = str(e).lower()
    return "duplicate" in err_str or "unique" in err_str or "23505" in err_str


def get_user_id(db: Client, token: str) -> str | None:
    """Resolve a bearer token to the auth user's id, or None if it is not valid."""
    try:
        res = db.auth.get_user(token)
    except Exception as e:
        logger.info("Token rejected by auth backend: %s", e)
        return None
    user = getattr(res, "user", None) if res else None
    return user.id if user else None


# ── Streak record (profiles) ──────────────────────────────────────────────────

def get_streak_row(db: Client, user_id: str) -> dict | None:
    res = _execute(
        db.table("profiles").select(STREAK_COLUMNS).eq("id", user_id),
        "streak read",
    )
    return res.data[0] if res.data else None


def streak_record_from_row(row: dict | None) -> StreakRecord:
    """Convert a profiles row; values that cannot be read at all raise StorageFailure."""
    if not row:
        return StreakRecord()
    last = row.get("last_study_date")
    freeze_count = row.get("streak_freeze_count")
    try:
        return StreakRecord(
            current_streak=int(row.get("current_streak") or 0),
            longest_streak=int(row.get("longest_streak") or 0),
            last_study_date=date.fromisoformat(last[:10]) if last else None,
            freeze_count=int(freeze_count) if freeze_count is not None else DEFAULT_FREEZE_COUNT,
        )
    except (TypeError, ValueError) as e:
        logger.error("Unreadable streak row %r: %s", row, e)
        raise StorageFailure("streak record unreadable") from e


def _streak_columns(record: StreakRecord) -> dict:
    return {
        "current_streak": record.current_streak,
        "longest_streak": record.longest_streak,
        "last_study_date": record.last_study_date.isoformat() if record.last_study_date else None,
        "streak_freeze_count": record.freeze_count,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }


def write_streak_if_unchanged(
    db: Client,
    user_id: str,
    record: StreakRecord,
    expected_last_date: date | None,
    exists: bool = True,
) -> bool:
    """
    Compare-and-set on last_study_date. Returns False when another writer
    changed the row since it was read (or created it first).
    """
    columns = _streak_columns(record)
    if not exists:
        try:
            db.table("profiles").insert({"id": user_id, **columns}).execute()
            return True
        except Exception as e:
            if _is_unique_violation(e):
                return False
            logger.error("Store failure during profile insert for %s: %s", user_id[:8], e)
            raise StorageFailure("profile insert failed") from e

    query = db.table("profiles").update(columns).eq("id", user_id)
    if expected_last_date is None:
        query = query.is_("last_study_date", "null")
    else:
        query = query.eq("last_study_date", expected_last_date.isoformat())
    res = _execute(query, "streak write")
    return bool(res.data)


# ── Study sessions ────────────────────────────────────────────────────────────

def get_session(db: Client, session_id: str, user_id: str) -> dict | None:
    res = _execute(
        db.table("study_sessions").select("*").eq("id", session_id).eq("user_id", user_id),
        "session read",
    )
    return res.data[0] if res.data else None


def update_session(db: Client, session_id: str, user_id: str, fields: dict) -> None:
    _execute(
        db.table("study_sessions").update(fields).eq("id", session_id).eq("user_id", user_id),
        "session write",
    )


def get_sessions(db: Client, user_id: str) -> list[dict]:
    res = _execute(
        db.table("study_sessions")
        .select("id, subject_id, duration_hours, is_completed, completed_at")
        .eq("user_id", user_id),
        "sessions read",
    )
    return res.data or []


def get_subjects(db: Client, user_id: str) -> list[dict]:
    res = _execute(
        db.table("subjects")
        .select("id, name, color")
        .eq("user_id", user_id)
        .eq("is_archived", False),
        "subjects read",
    )
    return res.data or []


def get_question_attempts(db: Client, user_id: str, limit: int = 100) -> list[dict]:
    res = _execute(
        db.table("question_attempts")
        .select("is_correct, attempted_at")
        .eq("user_id", user_id)
        .order("attempted_at", desc=True)
        .limit(limit),
        "question attempts read",
    )
    return res.data or []
