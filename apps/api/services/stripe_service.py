from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Optional
from uuid import UUID

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from models import StripeEvent, Subscription, User
from services import plans
from services.email_service import email_service

logger = logging.getLogger(__name__)

# Stripe statuses that end the paid entitlement immediately.
ENDED_STATUSES = ("canceled", "unpaid")


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    webhook_secret: Optional[str]
    checkout_success_url: str
    checkout_cancel_url: str
    portal_return_url: str


def _get_stripe_config() -> StripeConfig:
    """
    Load Stripe config via Settings.

    Fail closed: if configuration is missing, billing endpoints should not proceed.
    """
    if not settings.STRIPE_SECRET_KEY:
        raise RuntimeError("Stripe not configured (missing: STRIPE_SECRET_KEY)")

    base = settings.BASE_URL.rstrip("/")
    return StripeConfig(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        checkout_success_url=f"{base}/dashboard?success=true",
        checkout_cancel_url=f"{base}/dashboard?canceled=true",
        portal_return_url=f"{base}/dashboard",
    )


class StripeService:
    def __init__(self) -> None:
        cfg = _get_stripe_config()
        stripe.api_key = cfg.secret_key
        self.cfg = cfg

    def ensure_customer(self, db: Session, *, user: User) -> str:
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customer = stripe.Customer.create(
            email=user.email,
            name=user.name or None,
            metadata={"user_id": str(user.id)},
        )
        user.stripe_customer_id = str(customer.id)
        db.add(user)
        db.commit()
        return user.stripe_customer_id

    def create_checkout_session(self, db: Session, *, user: User, price_id: str) -> str:
        customer_id = self.ensure_customer(db, user=user)
        session = stripe.checkout.Session.create(
            mode="subscription",
            customer=customer_id,
            client_reference_id=str(user.id),
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=self.cfg.checkout_success_url,
            cancel_url=self.cfg.checkout_cancel_url,
            metadata={"user_id": str(user.id)},
            subscription_data={"metadata": {"user_id": str(user.id)}},
        )
        return str(session.url)

    def create_portal_session(self, *, user: User) -> str:
        customer_id = user.stripe_customer_id
        if not customer_id:
            raise ValueError("No stripe_customer_id for user")
        sess = stripe.billing_portal.Session.create(
            customer=str(customer_id),
            return_url=self.cfg.portal_return_url,
        )
        return str(sess.url)

    def construct_event(self, *, payload: bytes, sig_header: str):
        if not self.cfg.webhook_secret:
            raise RuntimeError("Stripe webhook secret not configured")
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=self.cfg.webhook_secret,
        )


def _ensure_subscription_row(db: Session, *, user_id: UUID) -> Subscription:
    sub = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if sub:
        return sub
    sub = Subscription(user_id=user_id)
    db.add(sub)
    db.flush()
    return sub


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a StripeObject or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _maybe_parse_ts(ts: Any) -> Optional[datetime]:
    if ts is None:
        return None
    try:
        return datetime.fromtimestamp(int(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _subscription_items(obj: Any) -> list:
    items = _get(obj, "items")
    return list(_get(items, "data") or [])


def _extract_price_id(obj: Any) -> Optional[str]:
    items = _subscription_items(obj)
    price = _get(items[0], "price") if items else None
    price_id = _get(price, "id")
    return str(price_id) if price_id else None


def _extract_current_period_end_ts(obj: Any) -> Optional[int]:
    """
    Stripe API compatibility:
    - Older API versions: `subscription.current_period_end` (top-level)
    - Newer API versions: billing period fields live on `subscription.items.data[*].current_period_end`
    """
    ts = _get(obj, "current_period_end")
    if ts is not None:
        return int(ts)

    ends = [int(_get(it, "current_period_end")) for it in _subscription_items(obj) if _get(it, "current_period_end") is not None]
    return max(ends) if ends else None


def _derive_cancel_at_period_end(obj: Any, *, current_period_end_ts: Optional[int]) -> bool:
    if bool(_get(obj, "cancel_at_period_end", False)):
        return True

    # Newer Stripe API uses `cancel_at` timestamps for scheduled cancellation.
    cancel_at = _get(obj, "cancel_at")
    if cancel_at is None:
        return False
    if current_period_end_ts is None:
        return True
    return int(cancel_at) == int(current_period_end_ts)


def _plan_display_name(plan: str) -> str:
    return plan.capitalize()


def _notify(user: User, email_type: str, **data: str) -> None:
    email_service.send_templated(
        user.email,
        email_type,
        user.language,
        {"first_name": user.name or "", **data},
    )


def _find_user(db: Session, *, user_id: Optional[str] = None, customer_id: Optional[str] = None) -> Optional[User]:
    if user_id:
        try:
            user = db.query(User).filter(User.id == UUID(str(user_id))).first()
        except ValueError:
            user = None
        if user:
            return user
    if customer_id:
        return db.query(User).filter(User.stripe_customer_id == customer_id).first()
    return None


def _user_for_subscription(db: Session, obj: Any) -> Optional[User]:
    metadata = _get(obj, "metadata") or {}
    user = _find_user(db, user_id=_get(metadata, "user_id"), customer_id=_get(obj, "customer"))
    if user:
        return user

    subscription_id = _get(obj, "id")
    if subscription_id:
        existing = db.query(Subscription).filter(Subscription.stripe_subscription_id == str(subscription_id)).first()
        if existing:
            return db.query(User).filter(User.id == existing.user_id).first()
    return None


def _handle_checkout_completed(db: Session, obj: Any) -> dict[str, Any]:
    customer_id = str(_get(obj, "customer") or "") or None
    subscription_id = str(_get(obj, "subscription") or "") or None
    ref_id = _get(obj, "client_reference_id") or _get(_get(obj, "metadata") or {}, "user_id")

    user = _find_user(db, user_id=ref_id, customer_id=customer_id)
    if not user or not subscription_id:
        logger.warning(f"Checkout completed without a matching user or subscription (ref={ref_id})")
        return {"matched_user": False}

    subscription = stripe.Subscription.retrieve(subscription_id)
    price_id = _extract_price_id(subscription)
    plan = plans.get_plan_type_from_price_id(price_id)
    previous_plan = user.subscription_status

    if customer_id and not user.stripe_customer_id:
        user.stripe_customer_id = customer_id

    sub = _ensure_subscription_row(db, user_id=user.id)
    sub.stripe_customer_id = customer_id or sub.stripe_customer_id
    sub.stripe_subscription_id = subscription_id
    sub.stripe_price_id = price_id
    sub.plan_type = plan
    sub.status = str(_get(subscription, "status") or "active")
    sub.current_period_end = _maybe_parse_ts(_extract_current_period_end_ts(subscription))
    sub.cancel_at_period_end = False
    sub.canceled_at = None

    user.subscription_status = plan
    db.add_all([user, sub])
    db.commit()

    if plans.compare_plans(previous_plan, plan) == "upgrade":
        _notify(user, "upgrade", plan_name=_plan_display_name(plan))

    return {"user_id": str(user.id), "plan": plan}


def _handle_subscription_change(db: Session, obj: Any, *, deleted: bool) -> dict[str, Any]:
    user = _user_for_subscription(db, obj)
    if not user:
        return {"matched_user": False}

    status = str(_get(obj, "status") or "") or None
    sub = _ensure_subscription_row(db, user_id=user.id)
    sub.stripe_subscription_id = str(_get(obj, "id") or "") or sub.stripe_subscription_id
    sub.stripe_customer_id = str(_get(obj, "customer") or "") or sub.stripe_customer_id
    sub.status = status

    if deleted or status in ENDED_STATUSES:
        previous_plan = user.subscription_status
        user.subscription_status = plans.FREE
        sub.plan_type = plans.FREE
        sub.cancel_at_period_end = False
        sub.canceled_at = _maybe_parse_ts(_get(obj, "canceled_at")) or datetime.now(timezone.utc)
        db.add_all([user, sub])
        db.commit()
        if previous_plan != plans.FREE:
            _notify(user, "downgrade", plan_name=_plan_display_name(plans.FREE))
        return {"user_id": str(user.id), "status": status, "plan": plans.FREE}

    period_end_ts = _extract_current_period_end_ts(obj)
    cancel_at_ts = _get(obj, "cancel_at")
    if period_end_ts is None and cancel_at_ts is not None:
        period_end_ts = int(cancel_at_ts)

    was_scheduled = bool(sub.cancel_at_period_end)
    sub.current_period_end = _maybe_parse_ts(period_end_ts)
    sub.cancel_at_period_end = _derive_cancel_at_period_end(obj, current_period_end_ts=period_end_ts)

    price_id = _extract_price_id(obj)
    if price_id:
        sub.stripe_price_id = price_id

    db.add(sub)
    db.commit()

    if sub.cancel_at_period_end and not was_scheduled:
        _notify(
            user,
            "downgrade_scheduled",
            plan_name=_plan_display_name(plans.FREE),
            current_plan_name=_plan_display_name(user.subscription_status),
            change_date=sub.current_period_end.date().isoformat() if sub.current_period_end else "",
        )

    return {"user_id": str(user.id), "status": status}


def _handle_invoice(db: Session, obj: Any, *, succeeded: bool) -> dict[str, Any]:
    subscription_id = _get(obj, "subscription")
    if not subscription_id:
        return {"matched_user": False}

    subscription = stripe.Subscription.retrieve(str(subscription_id))
    user = _user_for_subscription(db, subscription)
    if not user:
        return {"matched_user": False}

    if not succeeded:
        logger.warning(f"Invoice payment failed for user {user.id} (subscription {subscription_id})")
        return {"user_id": str(user.id), "payment_failed": True}

    plan = plans.get_plan_type_from_price_id(_extract_price_id(subscription))
    sub = _ensure_subscription_row(db, user_id=user.id)
    sub.stripe_subscription_id = str(subscription_id)
    sub.current_period_end = _maybe_parse_ts(_extract_current_period_end_ts(subscription))
    sub.plan_type = plan
    sub.status = str(_get(subscription, "status") or "active")
    user.subscription_status = plan
    db.add_all([user, sub])
    db.commit()
    return {"user_id": str(user.id), "plan": plan}


def process_stripe_event(db: Session, *, event: Any) -> dict[str, Any]:
    """
    Idempotently process a Stripe webhook event and update the subscription mirror + user plan.
    """
    event_id = str(_get(event, "id") or "")
    event_type = str(_get(event, "type") or "")
    stripe_created = _get(event, "created")

    if not event_id:
        return {"processed": False, "reason": "missing_event_id"}

    # Idempotency: if event already processed, do nothing.
    db.add(StripeEvent(event_id=event_id, event_type=event_type or "unknown", stripe_created=int(stripe_created) if stripe_created else None))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        return {"processed": False, "idempotent": True, "event_id": event_id}

    obj = _get(_get(event, "data"), "object")
    result: dict[str, Any] = {"processed": True, "event_id": event_id, "event_type": event_type}

    if event_type == "checkout.session.completed":
        result.update(_handle_checkout_completed(db, obj))
    elif event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
        result.update(_handle_subscription_change(db, obj, deleted=event_type.endswith("deleted")))
    elif event_type in ("invoice.payment_succeeded", "invoice.payment_failed"):
        result.update(_handle_invoice(db, obj, succeeded=event_type.endswith("succeeded")))
    else:
        result["handled"] = False

    # Commits the event row for unmatched/unhandled events.
    db.commit()
    return result
