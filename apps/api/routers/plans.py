"""
Plans API endpoints.
"""
from fastapi import APIRouter, Depends

from core.auth import get_current_user
from models import User
from services import plans

router = APIRouter(prefix="/v1/plans", tags=["plans"])


@router.get("")
def list_plans(current_user: User = Depends(get_current_user)):
    """Plan cards relative to the caller's current plan, plus its limits."""
    return {
        "current_plan": plans.normalize_plan(current_user.subscription_status),
        "limits": plans.get_limits(current_user.subscription_status),
        "plans": plans.get_plan_configs(current_user.subscription_status),
    }
