"""
Session timer state machine and session bookkeeping.

    start ──> active ──pause──> paused ──resume──> active
                 │                 │
                 └──────end────────┴──> ended

A user has at most one open (active or paused) session. Elapsed time
excludes pauses; the final duration is written once, on end, and is
credited to the linked goal.
"""
import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, ErrorCode, NotFoundError, PlanLimitError, ValidationError
from models import ActivitySession, Goal, User
from services import plans
from services.activities import get_activity
from services.goals import add_progress
from services.stats import invalidate_active_users
from services.text_limits import clean_text
from services.time_utils import local_date, month_start, range_bounds, today_in, utcnow

logger = logging.getLogger(__name__)

ACTIVE = "active"
PAUSED = "paused"
ENDED = "ended"


def elapsed_seconds(session: ActivitySession, now: Optional[datetime] = None) -> int:
    """Seconds of actual work, excluding pauses, as of now."""
    if session.status == ENDED:
        return session.duration or 0

    now = now or utcnow()
    until = session.paused_at if session.status == PAUSED and session.paused_at else now
    return max(0, int((until - session.start_time).total_seconds()) - (session.paused_seconds or 0))


def to_out(session: ActivitySession, now: Optional[datetime] = None) -> dict:
    activity = session.activity
    reflection = session.reflection
    return {
        "id": session.id,
        "activity_id": session.activity_id,
        "activity_name": activity.name if activity else None,
        "activity_icon": activity.icon if activity else None,
        "activity_color": activity.color if activity else None,
        "goal_id": session.goal_id,
        "start_time": session.start_time,
        "end_time": session.end_time,
        "duration": session.duration or 0,
        "elapsed_seconds": elapsed_seconds(session, now),
        "session_date": session.session_date,
        "status": session.status,
        "notes": session.notes,
        "location": session.location,
        "mood_score": reflection.mood_score if reflection else None,
        "created_at": session.created_at,
    }


def get_open_session(db: Session, user: User) -> Optional[ActivitySession]:
    return (
        db.query(ActivitySession)
        .filter(ActivitySession.user_id == user.id, ActivitySession.end_time.is_(None))
        .order_by(ActivitySession.start_time.desc())
        .first()
    )


def get_session(db: Session, user: User, session_id: UUID) -> ActivitySession:
    session = (
        db.query(ActivitySession)
        .filter(ActivitySession.id == session_id, ActivitySession.user_id == user.id)
        .first()
    )
    if session is None:
        raise NotFoundError("Session", error_code=ErrorCode.SESSION_NOT_FOUND)
    return session


def _resolve_goal_id(db: Session, user: User, goal_id: Optional[UUID], fallback: Optional[UUID]) -> Optional[UUID]:
    goal_id = goal_id or fallback
    if goal_id is None:
        return None
    if not db.query(Goal.id).filter(Goal.id == goal_id, Goal.user_id == user.id).first():
        raise NotFoundError("Goal", error_code=ErrorCode.GOAL_NOT_FOUND)
    return goal_id


def _credit_goal(db: Session, user: User, goal_id: Optional[UUID], seconds: int) -> None:
    if goal_id is None or not seconds:
        return
    goal = db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user.id).first()
    if goal is not None:
        add_progress(goal, seconds)


def _require_status(session: ActivitySession, *allowed: str) -> None:
    if session.status not in allowed:
        raise ConflictError(
            f"Cannot change a {session.status} session",
            error_code=ErrorCode.SESSION_INVALID_STATE,
        )


def start_session(db: Session, user: User, payload, now: Optional[datetime] = None) -> ActivitySession:
    if get_open_session(db, user) is not None:
        raise ConflictError("A session is already running", error_code=ErrorCode.SESSION_ALREADY_ACTIVE)

    activity = get_activity(db, user, payload.activity_id)
    now = now or utcnow()

    session = ActivitySession(
        user_id=user.id,
        activity_id=activity.id,
        goal_id=_resolve_goal_id(db, user, payload.goal_id, activity.goal_id),
        start_time=now,
        session_date=local_date(now, user.timezone),
        status=ACTIVE,
        paused_seconds=0,
        duration=0,
        location=clean_text(payload.location, "location", user.language),
        notes=clean_text(payload.notes, "session_notes", user.language),
    )
    db.add(session)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent start.
        db.rollback()
        raise ConflictError("A session is already running", error_code=ErrorCode.SESSION_ALREADY_ACTIVE)
    db.refresh(session)
    invalidate_active_users()

    logger.info(
        "Session started",
        extra={"extra_fields": {"user_id": str(user.id), "session_id": str(session.id)}},
    )
    return session


def pause_session(db: Session, user: User, session_id: UUID, now: Optional[datetime] = None) -> ActivitySession:
    session = get_session(db, user, session_id)
    _require_status(session, ACTIVE)

    session.status = PAUSED
    session.paused_at = now or utcnow()
    db.commit()
    db.refresh(session)
    return session


def resume_session(db: Session, user: User, session_id: UUID, now: Optional[datetime] = None) -> ActivitySession:
    session = get_session(db, user, session_id)
    _require_status(session, PAUSED)

    now = now or utcnow()
    session.paused_seconds = (session.paused_seconds or 0) + max(0, int((now - session.paused_at).total_seconds()))
    session.paused_at = None
    session.status = ACTIVE
    db.commit()
    db.refresh(session)
    return session


def end_session(db: Session, user: User, session_id: UUID, payload=None, now: Optional[datetime] = None) -> ActivitySession:
    session = get_session(db, user, session_id)
    _require_status(session, ACTIVE, PAUSED)

    now = now or utcnow()
    if session.status == PAUSED:
        # Close the running pause so end_time - start_time - paused_seconds == duration.
        session.paused_seconds = (session.paused_seconds or 0) + max(0, int((now - session.paused_at).total_seconds()))
        session.paused_at = None

    session.duration = max(0, int((now - session.start_time).total_seconds()) - (session.paused_seconds or 0))
    session.end_time = now
    session.status = ENDED

    if payload is not None:
        if payload.notes is not None:
            session.notes = clean_text(payload.notes, "session_notes", user.language)
        if payload.location is not None:
            session.location = clean_text(payload.location, "location", user.language)

    _credit_goal(db, user, session.goal_id, session.duration)
    db.commit()
    db.refresh(session)
    invalidate_active_users()

    logger.info(
        "Session ended",
        extra={"extra_fields": {
            "user_id": str(user.id),
            "session_id": str(session.id),
            "duration": session.duration,
        }},
    )
    return session


def _check_past_calendar(user: User, day) -> None:
    """Free users may only see and log sessions in the current month."""
    if plans.has_feature(user.subscription_status, "past_calendar"):
        return
    if day < month_start(today_in(user.timezone)):
        raise PlanLimitError(
            "Past months are not available on the free plan",
            error_code=ErrorCode.FEATURE_NOT_AVAILABLE,
        )


def list_sessions(db: Session, user: User, start=None, end=None) -> List[ActivitySession]:
    """
    Sessions newest first, optionally limited to local days start..end.

    Free users without a start date get the current month only.
    """
    if start is None and not plans.has_feature(user.subscription_status, "past_calendar"):
        start = month_start(today_in(user.timezone))
    if start is not None:
        _check_past_calendar(user, start)

    q = db.query(ActivitySession).filter(ActivitySession.user_id == user.id)
    if start is not None or end is not None:
        lower, upper = range_bounds(start or end, end or today_in(user.timezone), user.timezone)
        if start is not None:
            q = q.filter(ActivitySession.start_time >= lower)
        if end is not None:
            q = q.filter(ActivitySession.start_time < upper)
    return q.order_by(ActivitySession.start_time.desc()).all()


def create_session(db: Session, user: User, payload) -> ActivitySession:
    """Log a finished session after the fact."""
    if payload.end_time < payload.start_time:
        raise ValidationError("end_time must not be before start_time")

    session_day = local_date(payload.start_time, user.timezone)
    _check_past_calendar(user, session_day)
    activity = get_activity(db, user, payload.activity_id)

    duration = payload.duration
    if duration is None:
        duration = int((payload.end_time - payload.start_time).total_seconds())

    session = ActivitySession(
        user_id=user.id,
        activity_id=activity.id,
        goal_id=_resolve_goal_id(db, user, payload.goal_id, activity.goal_id),
        start_time=payload.start_time,
        end_time=payload.end_time,
        duration=duration,
        session_date=session_day,
        status=ENDED,
        paused_seconds=0,
        notes=clean_text(payload.notes, "session_notes", user.language),
        location=clean_text(payload.location, "location", user.language),
    )
    db.add(session)
    _credit_goal(db, user, session.goal_id, duration)
    db.commit()
    db.refresh(session)
    return session


def update_session(db: Session, user: User, session_id: UUID, payload) -> ActivitySession:
    session = get_session(db, user, session_id)
    fields = payload.model_dump(exclude_unset=True)

    old_goal_id, old_duration = session.goal_id, session.duration or 0

    if "activity_id" in fields and fields["activity_id"]:
        session.activity_id = get_activity(db, user, fields["activity_id"]).id
    if "goal_id" in fields:
        session.goal_id = _resolve_goal_id(db, user, fields["goal_id"], None)
    if fields.get("start_time"):
        new_day = local_date(fields["start_time"], user.timezone)
        _check_past_calendar(user, new_day)
        session.start_time = fields["start_time"]
        session.session_date = new_day
    if fields.get("end_time") and session.status == ENDED:
        session.end_time = fields["end_time"]
    if session.end_time is not None and session.end_time < session.start_time:
        raise ValidationError("end_time must not be before start_time")

    if session.status == ENDED:
        if fields.get("duration") is not None:
            session.duration = fields["duration"]
        elif "start_time" in fields or "end_time" in fields:
            session.duration = int((session.end_time - session.start_time).total_seconds())

    if "notes" in fields:
        session.notes = clean_text(fields["notes"], "session_notes", user.language)
    if "location" in fields:
        session.location = clean_text(fields["location"], "location", user.language)

    if session.status == ENDED:
        _credit_goal(db, user, old_goal_id, -old_duration)
        _credit_goal(db, user, session.goal_id, session.duration)

    db.commit()
    db.refresh(session)
    return session


def delete_session(db: Session, user: User, session_id: UUID) -> None:
    session = get_session(db, user, session_id)
    if session.status == ENDED:
        _credit_goal(db, user, session.goal_id, -(session.duration or 0))
    db.delete(session)
    db.commit()
    if session.status != ENDED:
        invalidate_active_users()
