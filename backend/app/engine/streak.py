"""
Streak tracking: pure functions, no DB access.

The caller supplies `today` (a calendar date in the user's timezone) and
persists whatever record comes back.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

STREAK_MILESTONES: list[int] = [3, 7, 14, 30, 50, 100, 365]
MAX_FREEZES = 3
FREEZE_STRIDE_DAYS = 7
DEFAULT_FREEZE_COUNT = 1


@dataclass(frozen=True)
class StreakRecord:
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: date | None = None
    freeze_count: int = DEFAULT_FREEZE_COUNT


@dataclass(frozen=True)
class StreakResult:
    streak: int
    longest: int
    milestone: int | None
    freeze_used: bool
    freeze_count: int
    record: StreakRecord = field(repr=False)

    def to_dict(self) -> dict:
        return {
            "streak": self.streak,
            "longest": self.longest,
            "milestone": self.milestone,
            "freeze_used": self.freeze_used,
            "freeze_count": self.freeze_count,
        }


def local_today(tz_name: str | None, now: datetime | None = None) -> date:
    """Calendar date of `now` in the given IANA timezone, falling back to UTC."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if tz_name:
        try:
            return now.astimezone(ZoneInfo(tz_name)).date()
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, using UTC", tz_name)
    return now.astimezone(timezone.utc).date()


def find_milestone(previous_streak: int, new_streak: int) -> int | None:
    """Smallest milestone newly reached by going from previous_streak to new_streak."""
    for m in STREAK_MILESTONES:
        if new_streak >= m and previous_streak < m:
            return m
    return None


def compute_streak_update(previous: StreakRecord, today: date) -> StreakResult:
    """
    Advance `previous` for a study day on `today`.
    Idempotent for a record already updated today.
    """
    if previous.last_study_date == today:
        return StreakResult(
            streak=previous.current_streak,
            longest=previous.longest_streak,
            milestone=None,
            freeze_used=False,
            freeze_count=previous.freeze_count,
            record=previous,
        )

    yesterday = today - timedelta(days=1)
    two_days_ago = today - timedelta(days=2)
    freeze_count = previous.freeze_count
    freeze_used = False

    if previous.last_study_date == yesterday:
        new_streak = previous.current_streak + 1
    elif previous.last_study_date == two_days_ago and freeze_count > 0:
        # one missed day, bridged by a freeze
        new_streak = previous.current_streak + 1
        freeze_count -= 1
        freeze_used = True
    else:
        new_streak = 1

    if new_streak % FREEZE_STRIDE_DAYS == 0 and freeze_count < MAX_FREEZES:
        freeze_count = min(freeze_count + 1, MAX_FREEZES)

    new_longest = max(new_streak, previous.longest_streak)
    record = StreakRecord(
        current_streak=new_streak,
        longest_streak=new_longest,
        last_study_date=today,
        freeze_count=freeze_count,
    )
    return StreakResult(
        streak=new_streak,
        longest=new_longest,
        milestone=find_milestone(previous.current_streak, new_streak),
        freeze_used=freeze_used,
        freeze_count=freeze_count,
        record=record,
    )


def normalize_record(record: StreakRecord, today: date) -> tuple[StreakRecord, list[str]]:
    """
    Clamp a stored record back into its invariants.
    Returns (record, problems); problems is empty when nothing was changed.
    """
    problems: list[str] = []
    current = record.current_streak
    longest = record.longest_streak
    freezes = record.freeze_count
    last = record.last_study_date

    if current < 0:
        problems.append(f"current_streak={current}")
        current = 0
    if longest < current:
        problems.append(f"longest_streak={longest} < current_streak={current}")
        longest = current
    if not 0 <= freezes <= MAX_FREEZES:
        problems.append(f"freeze_count={freezes}")
        freezes = max(0, min(freezes, MAX_FREEZES))
    if last is not None and last > today:
        problems.append(f"last_study_date={last.isoformat()} is in the future")
        last = today

    if not problems:
        return record, problems
    return replace(
        record,
        current_streak=current,
        longest_streak=longest,
        freeze_count=freezes,
        last_study_date=last,
    ), problems


def next_milestone(streak: int) -> int | None:
    for m in STREAK_MILESTONES:
        if m > streak:
            return m
    return None


def milestone_progress(streak: int) -> int:
    """Percent progress (0-100) from the last milestone passed towards the next one."""
    target = next_milestone(streak)
    if target is None:
        return 100
    floor = max((m for m in STREAK_MILESTONES if m <= streak), default=0)
    return int(100 * (streak - floor) / (target - floor))


def is_at_risk(record: StreakRecord, today: date) -> bool:
    """True when the streak survives only if the user studies today."""
    if record.last_study_date is None or record.current_streak == 0:
        return False
    return record.last_study_date == today - timedelta(days=1)


def replay_streak(days: Iterable[date]) -> StreakRecord:
    """Fold study days (any order, duplicates allowed) through the engine."""
    record = StreakRecord()
    for day in sorted(set(days)):
        record = compute_streak_update(record, day).record
    return record
