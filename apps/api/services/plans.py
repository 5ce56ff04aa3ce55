"""
Subscription plans and their limits.

Plan limits are a static table; everything here is a pure lookup so it
can be shared by routers, the billing webhook and background tasks.
"""
from typing import Any, Dict, List, Optional

from core.config import settings

FREE = "free"
STANDARD = "standard"
PREMIUM = "premium"

PLAN_TYPES = (FREE, STANDARD, PREMIUM)
PLAN_HIERARCHY = {FREE: 0, STANDARD: 1, PREMIUM: 2}

# None means unlimited.
PLAN_LIMITS: Dict[str, Dict[str, Any]] = {
    FREE: {
        "max_goals": 1,
        "max_activities": 3,
        "ai_feedback": False,
        "past_calendar": False,
        "advanced_analytics": False,
    },
    STANDARD: {
        "max_goals": 3,
        "max_activities": 3,
        "ai_feedback": True,
        "past_calendar": True,
        "advanced_analytics": False,
    },
    PREMIUM: {
        "max_goals": None,
        "max_activities": None,
        "ai_feedback": True,
        "past_calendar": True,
        "advanced_analytics": True,
    },
}

FEATURES = ("ai_feedback", "past_calendar", "advanced_analytics")


def normalize_plan(plan: Optional[str]) -> str:
    return plan if plan in PLAN_HIERARCHY else FREE


def get_limits(plan: Optional[str]) -> Dict[str, Any]:
    return PLAN_LIMITS[normalize_plan(plan)]


def compare_plans(current: str, target: str) -> str:
    """'upgrade', 'downgrade' or 'same' when moving from current to target."""
    diff = PLAN_HIERARCHY[normalize_plan(target)] - PLAN_HIERARCHY[normalize_plan(current)]
    if diff > 0:
        return "upgrade"
    if diff < 0:
        return "downgrade"
    return "same"


def _under_limit(limit: Optional[int], current_count: int) -> bool:
    return limit is None or current_count < limit


def can_add_goal(plan: Optional[str], current_count: int) -> bool:
    return _under_limit(get_limits(plan)["max_goals"], current_count)


def can_add_activity(plan: Optional[str], current_count: int) -> bool:
    return _under_limit(get_limits(plan)["max_activities"], current_count)


def has_feature(plan: Optional[str], feature: str) -> bool:
    if feature not in FEATURES:
        raise ValueError(f"Unknown feature: {feature}")
    return bool(get_limits(plan)[feature])


def _price_table() -> Dict[str, Dict[str, Optional[str]]]:
    return {
        STANDARD: {
            "monthly": settings.STRIPE_PRICE_STANDARD_MONTHLY_ID,
            "yearly": settings.STRIPE_PRICE_STANDARD_YEARLY_ID,
        },
        PREMIUM: {
            "monthly": settings.STRIPE_PRICE_PREMIUM_MONTHLY_ID,
            "yearly": settings.STRIPE_PRICE_PREMIUM_YEARLY_ID,
        },
    }


def get_plan_type_from_price_id(price_id: Optional[str]) -> str:
    """Map a Stripe price id to a plan. Unknown prices resolve to free."""
    if not price_id:
        return FREE
    for plan, intervals in _price_table().items():
        if price_id in {p for p in intervals.values() if p}:
            return plan
    return FREE


def get_price_id_from_plan_type(plan: str, interval: str = "monthly") -> Optional[str]:
    return _price_table().get(plan, {}).get(interval)


def _button_text(user_plan: str, card_plan: str) -> str:
    if user_plan == card_plan:
        return "current_plan"
    change = compare_plans(user_plan, card_plan)
    if change == "downgrade":
        return "downgrade"
    if change == "upgrade":
        return "upgrade"
    return "manage_subscription"


def get_plan_configs(user_plan: Optional[str] = FREE) -> List[Dict[str, Any]]:
    """
    Plan cards for the pricing page, relative to the user's current plan.
    """
    user_plan = normalize_plan(user_plan)
    cards = [
        {
            "id": FREE,
            "name": FREE,
            "price": "$0",
            "price_label": "per_month",
            "price_id": None,
            "button_variant": "outline",
            "is_popular": False,
        },
        {
            "id": STANDARD,
            "name": STANDARD,
            "price": "$9.99",
            "price_label": "per_month",
            "price_id": get_price_id_from_plan_type(STANDARD),
            "button_variant": "default",
            "is_popular": True,
        },
    ]
    for card in cards:
        card["interval"] = "monthly"
        card["features"] = [f for f in FEATURES if has_feature(card["id"], f)]
        card["limits"] = get_limits(card["id"])
        card["is_current"] = card["id"] == user_plan
        card["button_text"] = _button_text(user_plan, card["id"])
    return cards
