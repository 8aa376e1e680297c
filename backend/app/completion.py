"""
Session completion: toggles a study session and drives the streak engine.

The streak read → compute → write cycle is a compare-and-set on
last_study_date, retried on conflict, so concurrent completions for the same
user on the same day produce a single increment.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from .db import (
    get_session, update_session,
    get_streak_row, streak_record_from_row, write_streak_if_unchanged,
)
from .engine.streak import StreakResult, compute_streak_update, normalize_record, local_today
from .errors import NotFound, StorageFailure, StreakWriteConflict

logger = logging.getLogger(__name__)

MAX_STREAK_WRITE_ATTEMPTS = 3


@dataclass
class CompletionOutcome:
    success: bool
    streak: StreakResult | None = None

    def to_dict(self) -> dict:
        return {"success": self.success, "streak": self.streak.to_dict() if self.streak else None}


def record_study_day(db, user_id: str, now: datetime | None = None) -> StreakResult:
    """
    Apply one study day to the user's streak and persist it.
    Raises StorageFailure (or StreakWriteConflict after repeated lost races).
    """
    now = now or datetime.now(timezone.utc)
    today: date | None = None

    for attempt in range(1, MAX_STREAK_WRITE_ATTEMPTS + 1):
        row = get_streak_row(db, user_id)
        if today is None:
            today = local_today((row or {}).get("timezone"), now)

        stored = streak_record_from_row(row)
        previous, problems = normalize_record(stored, today)
        if problems:
            logger.warning("Normalized invalid streak record for %s...: %s", user_id[:8], "; ".join(problems))

        result = compute_streak_update(previous, today)
        if previous.last_study_date == today:
            return result

        written = write_streak_if_unchanged(
            db, user_id, result.record, stored.last_study_date, exists=row is not None,
        )
        if written:
            logger.info("Streak for %s...: %d (longest %d, freeze_used=%s, milestone=%s)",
                        user_id[:8], result.streak, result.longest, result.freeze_used, result.milestone)
            return result

        logger.info("Streak write conflict for %s... (attempt %d)", user_id[:8], attempt)

    raise StreakWriteConflict(f"streak update for {user_id[:8]}... lost {MAX_STREAK_WRITE_ATTEMPTS} races")


def complete_session(
    db,
    user_id: str,
    session_id: str,
    completed: bool = True,
    notes: str | None = None,
    now: datetime | None = None,
) -> CompletionOutcome:
    """
    Mark a session completed (or not) for its owner.

    Only a not-completed → completed transition touches the streak. Marking a
    session incomplete never reverses a streak update already made.
    """
    session = get_session(db, session_id, user_id)
    if not session:
        raise NotFound("Session not found")

    now = now or datetime.now(timezone.utc)
    was_completed = bool(session.get("is_completed"))

    fields: dict = {}
    if notes is not None:
        fields["notes"] = notes
    if completed and not was_completed:
        fields.update({"is_completed": True, "completed_at": now.isoformat()})
    elif not completed:
        fields.update({"is_completed": False, "completed_at": None})

    if fields:
        update_session(db, session_id, user_id, fields)

    if not completed or was_completed:
        return CompletionOutcome(success=True)

    try:
        streak = record_study_day(db, user_id, now)
    except StorageFailure as e:
        # the session write above stays committed
        logger.error("Session %s... completed but streak update failed for %s...: %s",
                     session_id[:8], user_id[:8], e)
        return CompletionOutcome(success=True)

    return CompletionOutcome(success=True, streak=streak)
