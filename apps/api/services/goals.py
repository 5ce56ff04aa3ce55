"""
Goal planning and bookkeeping.

A goal's target is derived from the hours the user can commit on weekdays
and weekend days between today and the deadline; progress is the sum of
session durations logged against it (seconds).
"""
import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import ErrorCode, NotFoundError, PlanLimitError
from models import Goal, User
from services import plans
from services.text_limits import clean_text
from services.time_utils import today_in, utcnow

logger = logging.getLogger(__name__)


def calculate_total_hours(deadline: Optional[date], weekday_hours: float, weekend_hours: float, today: date) -> int:
    """
    Hours available until the deadline.

    Whole weeks contribute 5 weekdays and 2 weekend days; the remaining
    days are counted as weekdays.
    """
    if not deadline or (not weekday_hours and not weekend_hours):
        return 0

    days = (deadline - today).days
    if days <= 0:
        return 0

    weeks, remainder = divmod(days, 7)
    total = weekday_hours * 5 * weeks + weekend_hours * 2 * weeks + weekday_hours * remainder
    return round(total)


def weekly_hours(goal: Goal) -> float:
    return (goal.weekday_hours or 0) * 5 + (goal.weekend_hours or 0) * 2


def monthly_hours(goal: Goal) -> float:
    return weekly_hours(goal) * 4


def progress_percent(goal: Goal) -> int:
    if not goal.target_duration:
        return 0
    return min(100, round((goal.current_value or 0) / goal.target_duration * 100))


def to_out(goal: Goal) -> dict:
    return {
        "id": goal.id,
        "title": goal.title,
        "description": goal.description,
        "deadline": goal.deadline,
        "unit": goal.unit,
        "target_duration": goal.target_duration,
        "current_value": goal.current_value,
        "weekday_hours": goal.weekday_hours,
        "weekend_hours": goal.weekend_hours,
        "calculated_hours": goal.calculated_hours,
        "dont_list": goal.dont_list or [],
        "status": goal.status,
        "progress_percent": progress_percent(goal),
        "weekly_hours": weekly_hours(goal),
        "monthly_hours": monthly_hours(goal),
        "completed_at": goal.completed_at,
        "created_at": goal.created_at,
        "updated_at": goal.updated_at,
    }


def list_goals(db: Session, user: User, active_only: bool = False) -> List[Goal]:
    q = db.query(Goal).filter(Goal.user_id == user.id)
    if active_only:
        q = q.filter(Goal.status == "active")
    return q.order_by(Goal.created_at.asc()).all()


def get_goal(db: Session, user: User, goal_id: UUID) -> Goal:
    goal = db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user.id).first()
    if goal is None:
        raise NotFoundError("Goal", error_code=ErrorCode.GOAL_NOT_FOUND)
    return goal


def _clean_dont_list(items: Optional[List[str]], language: str) -> List[str]:
    cleaned = (clean_text(item, "goal_title", language) for item in items or [])
    return [item for item in cleaned if item]


def create_goal(db: Session, user: User, payload) -> Goal:
    active_count = db.query(Goal).filter(Goal.user_id == user.id, Goal.status == "active").count()
    if not plans.can_add_goal(user.subscription_status, active_count):
        raise PlanLimitError(
            f"Goal limit reached for the {user.subscription_status} plan",
            error_code=ErrorCode.GOAL_LIMIT_REACHED,
        )

    hours = payload.calculated_hours
    if hours is None:
        hours = calculate_total_hours(
            payload.deadline, payload.weekday_hours, payload.weekend_hours, today_in(user.timezone)
        )

    goal = Goal(
        user_id=user.id,
        title=clean_text(payload.title, "goal_title", user.language) or "",
        description=clean_text(payload.motivation, "goal_motivation", user.language),
        deadline=payload.deadline,
        weekday_hours=payload.weekday_hours,
        weekend_hours=payload.weekend_hours,
        calculated_hours=hours,
        target_duration=hours * 3600,
        current_value=0,
        dont_list=_clean_dont_list(payload.dont_list, user.language),
        status="active",
    )
    db.add(goal)
    db.commit()
    db.refresh(goal)

    logger.info("Goal created", extra={"extra_fields": {"user_id": str(user.id), "goal_id": str(goal.id)}})
    return goal


def add_progress(goal: Goal, seconds: int) -> Goal:
    """Add logged time to a goal. Progress never drops below zero."""
    goal.current_value = max(0, (goal.current_value or 0) + int(seconds))
    return goal


def update_goal(db: Session, user: User, goal_id: UUID, payload) -> Goal:
    goal = get_goal(db, user, goal_id)
    fields = payload.model_dump(exclude_unset=True)

    if fields.get("add_duration") is not None:
        add_progress(goal, fields["add_duration"])
        db.commit()
        db.refresh(goal)
        return goal

    if "title" in fields:
        goal.title = clean_text(fields["title"], "goal_title", user.language) or goal.title
    if "motivation" in fields:
        goal.description = clean_text(fields["motivation"], "goal_motivation", user.language)
    if "deadline" in fields:
        goal.deadline = fields["deadline"]
    if "weekday_hours" in fields:
        goal.weekday_hours = fields["weekday_hours"]
    if "weekend_hours" in fields:
        goal.weekend_hours = fields["weekend_hours"]
    if "dont_list" in fields:
        goal.dont_list = _clean_dont_list(fields["dont_list"], user.language)
    if "calculated_hours" in fields:
        goal.calculated_hours = fields["calculated_hours"]
        goal.target_duration = fields["calculated_hours"] * 3600
    if "status" in fields:
        _set_status(goal, fields["status"])

    db.commit()
    db.refresh(goal)
    return goal


def _set_status(goal: Goal, status: str) -> None:
    goal.status = status
    goal.completed_at = utcnow() if status == "completed" else None


def complete_goal(db: Session, user: User, goal_id: UUID) -> Goal:
    goal = get_goal(db, user, goal_id)
    _set_status(goal, "completed")
    db.commit()
    db.refresh(goal)
    return goal


def delete_goal(db: Session, user: User, goal_id: UUID) -> None:
    goal = get_goal(db, user, goal_id)
    db.delete(goal)
    db.commit()
