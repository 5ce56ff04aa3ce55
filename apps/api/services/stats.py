"""
Dashboard statistics over ended sessions.
"""
import logging
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from core.cache import delete_cache, get_cache, set_cache
from core.config import settings
from models import Activity, ActivitySession, User
from services.time_utils import calculate_streak_days, day_bounds, format_duration, local_date, today_in

logger = logging.getLogger(__name__)

ACTIVE_USERS_CACHE_KEY = "stats:active_users"


def activity_stats(db: Session, user: User) -> List[Dict]:
    """Total time and session count per activity, largest first."""
    rows = (
        db.query(
            Activity.id,
            Activity.name,
            Activity.icon,
            Activity.color,
            func.coalesce(func.sum(ActivitySession.duration), 0),
            func.count(ActivitySession.id),
        )
        .join(ActivitySession, ActivitySession.activity_id == Activity.id)
        .filter(ActivitySession.user_id == user.id, ActivitySession.end_time.isnot(None))
        .group_by(Activity.id, Activity.name, Activity.icon, Activity.color)
        .all()
    )
    stats = [
        {
            "activity_id": activity_id,
            "name": name,
            "icon": icon,
            "color": color,
            "total_duration": int(total),
            "session_count": int(count),
            "formatted_duration": format_duration(int(total)),
        }
        for activity_id, name, icon, color, total, count in rows
    ]
    stats.sort(key=lambda s: s["total_duration"], reverse=True)
    return stats


def summary(db: Session, user: User, today: Optional[date] = None) -> Dict:
    today = today or today_in(user.timezone)
    ended = (
        db.query(ActivitySession.start_time, ActivitySession.duration)
        .filter(ActivitySession.user_id == user.id, ActivitySession.end_time.isnot(None))
        .all()
    )

    total = sum(d or 0 for _, d in ended)
    day_start, day_end = day_bounds(today, user.timezone)
    today_total = sum(d or 0 for start, d in ended if day_start <= start < day_end)
    session_days = {local_date(start, user.timezone) for start, _ in ended}

    return {
        "total_duration": total,
        "formatted_duration": format_duration(total),
        "session_count": len(ended),
        "streak_days": calculate_streak_days(session_days, today),
        "today_duration": today_total,
    }


def count_active_users(db: Session) -> int:
    """Users with a session currently open. Cached briefly in Redis."""
    cached = get_cache(ACTIVE_USERS_CACHE_KEY)
    if cached is not None:
        return int(cached)

    count = (
        db.query(func.count(distinct(ActivitySession.user_id)))
        .filter(ActivitySession.end_time.is_(None))
        .scalar()
    ) or 0
    set_cache(ACTIVE_USERS_CACHE_KEY, count, settings.CACHE_TTL_ACTIVE_USERS)
    return count


def invalidate_active_users() -> None:
    """Drop the cached count; called whenever a session opens or closes."""
    delete_cache(ACTIVE_USERS_CACHE_KEY)
