import re
from pydantic import BaseModel, Field
from typing import Optional

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)


def is_uuid(v: str) -> bool:
    return bool(UUID_RE.match(v.lower()))


class SessionCompletion(BaseModel):
    # anything but an explicit false counts as completing the session
    completed: bool = True
    notes: Optional[str] = Field(default=None, max_length=5000)
    model_config = {"extra": "ignore"}


class StreakResultOut(BaseModel):
    streak: int
    longest: int
    milestone: Optional[int] = None
    freeze_used: bool
    freeze_count: int


class CompletionOut(BaseModel):
    success: bool
    streak: Optional[StreakResultOut] = None


class StreakSummary(BaseModel):
    current_streak: int
    longest_streak: int
    last_study_date: Optional[str] = None
    freeze_count: int
    next_milestone: Optional[int] = None
    days_to_next_milestone: Optional[int] = None
    milestone_progress: int
    at_risk: bool
    studied_today: bool
