"""
Activity catalogue per user.

Deleting an activity only stamps deleted_at so historical sessions keep
their name, icon and colour.
"""
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import ErrorCode, NotFoundError, PlanLimitError
from models import Activity, Goal, User
from services import plans
from services.text_limits import clean_text
from services.time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#6366f1"


def list_activities(db: Session, user: User) -> List[Activity]:
    return (
        db.query(Activity)
        .filter(Activity.user_id == user.id, Activity.deleted_at.is_(None))
        .order_by(Activity.created_at.desc())
        .all()
    )


def get_activity(db: Session, user: User, activity_id: UUID, include_deleted: bool = False) -> Activity:
    q = db.query(Activity).filter(Activity.id == activity_id, Activity.user_id == user.id)
    if not include_deleted:
        q = q.filter(Activity.deleted_at.is_(None))
    activity = q.first()
    if activity is None:
        raise NotFoundError("Activity", error_code=ErrorCode.ACTIVITY_NOT_FOUND)
    return activity


def _check_goal_owner(db: Session, user: User, goal_id: Optional[UUID]) -> None:
    if goal_id is None:
        return
    exists = db.query(Goal.id).filter(Goal.id == goal_id, Goal.user_id == user.id).first()
    if not exists:
        raise NotFoundError("Goal", error_code=ErrorCode.GOAL_NOT_FOUND)


def create_activity(db: Session, user: User, payload) -> Activity:
    count = db.query(Activity).filter(Activity.user_id == user.id, Activity.deleted_at.is_(None)).count()
    if not plans.can_add_activity(user.subscription_status, count):
        raise PlanLimitError(
            f"Activity limit reached for the {user.subscription_status} plan",
            error_code=ErrorCode.ACTIVITY_LIMIT_REACHED,
        )
    _check_goal_owner(db, user, payload.goal_id)

    activity = Activity(
        user_id=user.id,
        name=clean_text(payload.name, "activity_name", user.language) or "",
        icon=payload.icon,
        color=payload.color or DEFAULT_COLOR,
        goal_id=payload.goal_id,
    )
    db.add(activity)
    db.commit()
    db.refresh(activity)
    return activity


def update_activity(db: Session, user: User, activity_id: UUID, payload) -> Activity:
    activity = get_activity(db, user, activity_id)
    fields = payload.model_dump(exclude_unset=True)

    if "name" in fields and fields["name"]:
        activity.name = clean_text(fields["name"], "activity_name", user.language) or activity.name
    if "icon" in fields:
        activity.icon = fields["icon"]
    if "color" in fields:
        activity.color = fields["color"] or DEFAULT_COLOR
    if "goal_id" in fields:
        _check_goal_owner(db, user, fields["goal_id"])
        activity.goal_id = fields["goal_id"]

    db.commit()
    db.refresh(activity)
    return activity


def delete_activity(db: Session, user: User, activity_id: UUID) -> None:
    activity = get_activity(db, user, activity_id)
    activity.deleted_at = utcnow()
    db.commit()
    logger.info("Activity soft-deleted", extra={"extra_fields": {"activity_id": str(activity_id)}})
