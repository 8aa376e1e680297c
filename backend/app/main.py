"""
Study Planner FastAPI backend for session completion and study streaks
"""
import logging
import os
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .db import (
    get_client, get_user_id, get_streak_row, streak_record_from_row,
    get_sessions, get_subjects, get_question_attempts,
)
from .completion import complete_session, record_study_day, local_today
from .engine.streak import normalize_record, next_milestone, milestone_progress, is_at_risk
from .engine.progress import subject_progress, weekly_hours, quiz_accuracy
from .errors import StudyPlannerError, Unauthenticated, NotFound
from .models import SessionCompletion, CompletionOut, StreakResultOut, StreakSummary, is_uuid

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title="Study Planner API")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

DEFAULT_ORIGINS = [
    "http://localhost:3000",
]
ALLOWED_ORIGINS = [
    o.strip() for o in os.environ.get("ALLOWED_ORIGINS", "").split(",") if o.strip()
] or DEFAULT_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Authorization", "Content-Type"],
)


@app.exception_handler(StudyPlannerError)
def handle_study_planner_error(request: Request, exc: StudyPlannerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health():
    try:
        db = get_client()
        db.table("profiles").select("id").limit(1).execute()
        return {"status": "ok", "db": "ok"}
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
        raise HTTPException(status_code=503, detail="DB unavailable")


# ── Auth ──────────────────────────────────────────────────────────────────────

def get_bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated("Missing Bearer token")
    return authorization.removeprefix("Bearer ").strip()


def require_user(token: str = Depends(get_bearer_token)) -> str:
    user_id = get_user_id(get_client(), token)
    if not user_id:
        raise Unauthenticated("Invalid or expired token")
    return user_id


# ── Sessions ──────────────────────────────────────────────────────────────────

@app.patch("/api/sessions/{session_id}/complete", response_model=CompletionOut)
@limiter.limit("60/minute")
def complete_study_session(
    request: Request,
    session_id: str,
    body: Optional[SessionCompletion] = None,
    user_id: str = Depends(require_user),
):
    if not is_uuid(session_id):
        raise NotFound("Session not found")
    body = body or SessionCompletion()
    outcome = complete_session(get_client(), user_id, session_id, body.completed, body.notes)
    return outcome.to_dict()


# ── Streak ────────────────────────────────────────────────────────────────────

@app.post("/api/streak/update", response_model=StreakResultOut)
@limiter.limit("60/minute")
def update_streak(request: Request, user_id: str = Depends(require_user)):
    result = record_study_day(get_client(), user_id)
    return result.to_dict()


@app.get("/api/streak", response_model=StreakSummary)
def get_streak(user_id: str = Depends(require_user)):
    """Stored streak plus display hints. The stored value is never decayed here."""
    row = get_streak_row(get_client(), user_id)
    today = local_today((row or {}).get("timezone"))
    record, _ = normalize_record(streak_record_from_row(row), today)

    target = next_milestone(record.current_streak)
    return {
        "current_streak": record.current_streak,
        "longest_streak": record.longest_streak,
        "last_study_date": record.last_study_date.isoformat() if record.last_study_date else None,
        "freeze_count": record.freeze_count,
        "next_milestone": target,
        "days_to_next_milestone": target - record.current_streak if target else None,
        "milestone_progress": milestone_progress(record.current_streak),
        "at_risk": is_at_risk(record, today),
        "studied_today": record.last_study_date == today,
    }


# ── Progress ──────────────────────────────────────────────────────────────────

@app.get("/api/progress")
@limiter.limit("30/minute")
def get_progress(request: Request, user_id: str = Depends(require_user)):
    """Per-subject completion, last week's study hours and quiz accuracy."""
    db = get_client()
    row = get_streak_row(db, user_id)
    tz_name = (row or {}).get("timezone")
    today = local_today(tz_name)

    sessions = get_sessions(db, user_id)
    subjects = get_subjects(db, user_id)
    accuracy, attempt_count = quiz_accuracy(get_question_attempts(db, user_id))

    return {
        "subjects": subject_progress(subjects, sessions),
        "weekly_hours": weekly_hours(sessions, today, tz_name),
        "total_completed_sessions": sum(1 for s in sessions if s.get("is_completed")),
        "quiz_accuracy": accuracy,
        "total_attempts": attempt_count,
    }
