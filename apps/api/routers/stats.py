"""
Statistics API endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import APIException, ErrorCode
from models import User
from schemas import ActivityStat, StatsSummary
from services import stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/stats", tags=["stats"])


@router.get("/activities", response_model=List[ActivityStat])
def activity_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return stats.activity_stats(db, current_user)


@router.get("/summary", response_model=StatsSummary)
def summary(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return stats.summary(db, current_user)


@router.get("/active-users")
def active_users(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Number of users with a running session right now."""
    try:
        return {"count": stats.count_active_users(db)}
    except Exception as e:
        logger.error(f"Active user count failed: {e}")
        raise APIException(500, "Failed to fetch active users", ErrorCode.ACTIVE_USERS_FETCH_FAILED)
