from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import APIException, ErrorCode
from models import Subscription, User
from schemas import CheckoutRequest, SubscriptionInfo, UrlResponse
from services.stripe_service import StripeService, process_stripe_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/billing", tags=["billing"])


@router.post("/checkout", response_model=UrlResponse)
def create_checkout(
    request: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a Stripe Checkout Session for the given price.
    Returns a hosted URL.
    """
    try:
        url = StripeService().create_checkout_session(db, user=current_user, price_id=request.price_id)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Checkout session creation failed for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create checkout session")
    return {"url": url}


@router.post("/portal", response_model=UrlResponse)
def create_portal(current_user: User = Depends(get_current_user)):
    """
    Create a Stripe Customer Portal Session.
    Returns a hosted URL.
    """
    try:
        url = StripeService().create_portal_session(user=current_user)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Portal session creation failed for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create portal session")
    return {"url": url}


@router.get("/subscription", response_model=SubscriptionInfo)
def get_subscription(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        sub = db.query(Subscription).filter(Subscription.user_id == current_user.id).first()
    except Exception as e:
        logger.error(f"Subscription lookup failed for user {current_user.id}: {e}")
        raise APIException(500, "Failed to fetch subscription", ErrorCode.SUBSCRIPTION_FETCH_FAILED)

    return {
        "subscription_status": current_user.subscription_status,
        "current_period_end": sub.current_period_end if sub else None,
        "cancel_at_period_end": bool(sub.cancel_at_period_end) if sub else False,
        "canceled_at": sub.canceled_at if sub else None,
    }


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe webhook endpoint.

    Verifies signature and processes events idempotently.
    """
    sig = request.headers.get("stripe-signature")
    if not sig:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    payload = await request.body()
    try:
        event = StripeService().construct_event(payload=payload, sig_header=sig)
    except Exception:
        # Signature verification errors should return 400 so Stripe can retry appropriately.
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    result = process_stripe_event(db, event=event)
    return {"ok": True, "result": result}
