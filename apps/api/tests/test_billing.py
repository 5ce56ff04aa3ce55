"""
Tests for Stripe billing: checkout/portal endpoints, webhook verification,
idempotent event processing and the plan changes each event drives.

Stripe itself is never called; the SDK entry points are monkeypatched.
"""
from types import SimpleNamespace

import pytest
import stripe

from conftest import auth_headers
from core.config import settings
from models import StripeEvent, Subscription, User
from services import stripe_service as ss

WEBHOOK_URL = "/v1/billing/webhooks/stripe"
PERIOD_END = 1767225600  # 2026-01-01T00:00:00Z


def _config():
    return ss.StripeConfig(
        secret_key="sk_test_dummy",
        webhook_secret="whsec_dummy",
        checkout_success_url="http://localhost:3000/dashboard?success=true",
        checkout_cancel_url="http://localhost:3000/dashboard?canceled=true",
        portal_return_url="http://localhost:3000/dashboard",
    )


def _event(event_id, event_type, obj):
    return {"id": event_id, "type": event_type, "created": 123, "data": {"object": obj}}


def _subscription(sub_id="sub_1", customer="cus_1", status="active", price_id=None, **extra):
    # Billing period lives on the items, as in newer Stripe API versions.
    item = {"current_period_end": PERIOD_END, "price": {"id": price_id or settings.STRIPE_PRICE_STANDARD_MONTHLY_ID}}
    return {"id": sub_id, "customer": customer, "status": status, "items": {"data": [item]}, **extra}


@pytest.fixture
def stripe_configured(monkeypatch):
    monkeypatch.setattr(ss, "_get_stripe_config", _config)


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []
    monkeypatch.setattr(ss.email_service, "send_templated", lambda *args, **kwargs: sent.append(args) or True)
    return sent


@pytest.fixture
def deliver(client, monkeypatch, stripe_configured):
    """Post an event through the webhook endpoint with signature checks stubbed."""
    def _deliver(event):
        monkeypatch.setattr(ss.StripeService, "construct_event", lambda self, payload, sig_header: event)
        return client.post(WEBHOOK_URL, content=b"{}", headers={"stripe-signature": "t=1,v1=dummy"})

    return _deliver


class TestCheckoutAndPortal:

    def test_not_configured_fails_closed(self, client, test_user):
        resp = client.post("/v1/billing/checkout", json={"price_id": "price_x"}, headers=auth_headers(test_user))
        assert resp.status_code == 503

    def test_checkout_creates_customer_once(self, client, test_user, db_session, monkeypatch, stripe_configured):
        customers, sessions = [], []

        def _create_customer(**kwargs):
            customers.append(kwargs)
            return SimpleNamespace(id="cus_new")

        def _create_session(**kwargs):
            sessions.append(kwargs)
            return SimpleNamespace(url="https://stripe.test/checkout")

        monkeypatch.setattr(stripe.Customer, "create", _create_customer)
        monkeypatch.setattr(stripe.checkout.Session, "create", _create_session)

        headers = auth_headers(test_user)
        for _ in range(2):
            resp = client.post("/v1/billing/checkout", json={"price_id": "price_std"}, headers=headers)
            assert resp.status_code == 200
            assert resp.json() == {"url": "https://stripe.test/checkout"}

        assert len(customers) == 1
        assert customers[0]["metadata"] == {"user_id": str(test_user.id)}
        assert sessions[0]["mode"] == "subscription"
        assert sessions[0]["line_items"] == [{"price": "price_std", "quantity": 1}]
        assert sessions[0]["client_reference_id"] == str(test_user.id)
        assert sessions[1]["customer"] == "cus_new"

        db_session.expire_all()
        assert db_session.get(User, test_user.id).stripe_customer_id == "cus_new"

    def test_checkout_requires_price(self, client, test_user, stripe_configured):
        resp = client.post("/v1/billing/checkout", json={"price_id": ""}, headers=auth_headers(test_user))
        assert resp.status_code == 422

    def test_portal_without_customer(self, client, test_user, stripe_configured):
        resp = client.post("/v1/billing/portal", headers=auth_headers(test_user))
        assert resp.status_code == 400

    def test_portal(self, client, make_user, monkeypatch, stripe_configured):
        user = make_user(plan="standard", stripe_customer_id="cus_1")
        monkeypatch.setattr(
            stripe.billing_portal.Session,
            "create",
            lambda **kwargs: SimpleNamespace(url=f"https://stripe.test/portal/{kwargs['customer']}"),
        )
        resp = client.post("/v1/billing/portal", headers=auth_headers(user))
        assert resp.status_code == 200
        assert resp.json() == {"url": "https://stripe.test/portal/cus_1"}

    def test_subscription_info_defaults(self, client, test_user):
        body = client.get("/v1/billing/subscription", headers=auth_headers(test_user)).json()
        assert body == {
            "subscription_status": "free",
            "current_period_end": None,
            "cancel_at_period_end": False,
            "canceled_at": None,
        }


class TestWebhook:

    def test_missing_signature(self, client):
        resp = client.post(WEBHOOK_URL, content=b"{}")
        assert resp.status_code == 400
        assert resp.json()["error_code"] == "VALIDATION_ERROR"

    def test_invalid_signature(self, client, monkeypatch, stripe_configured):
        def _reject(self, payload, sig_header):
            raise ValueError("bad signature")

        monkeypatch.setattr(ss.StripeService, "construct_event", _reject)
        resp = client.post(WEBHOOK_URL, content=b"{}", headers={"stripe-signature": "t=1,v1=bad"})
        assert resp.status_code == 400

    def test_duplicate_delivery_is_idempotent(self, deliver, db_session):
        event = _event("evt_dup", "customer.created", {})

        first = deliver(event).json()
        assert first["ok"] is True
        assert first["result"]["processed"] is True
        assert first["result"]["handled"] is False

        second = deliver(event).json()
        assert second["result"] == {"processed": False, "idempotent": True, "event_id": "evt_dup"}
        assert db_session.query(StripeEvent).count() == 1

    def test_event_without_id(self, db_session):
        assert ss.process_stripe_event(db_session, event={"type": "customer.created"}) == {
            "processed": False,
            "reason": "missing_event_id",
        }


class TestSubscriptionLifecycle:

    def test_checkout_completed_upgrades_and_emails(self, deliver, test_user, db_session, monkeypatch, sent_emails):
        monkeypatch.setattr(stripe.Subscription, "retrieve", lambda sub_id: _subscription(sub_id))
        obj = {"customer": "cus_1", "subscription": "sub_1", "client_reference_id": str(test_user.id)}

        resp = deliver(_event("evt_checkout", "checkout.session.completed", obj))
        assert resp.json()["result"]["plan"] == "standard"

        db_session.expire_all()
        user = db_session.get(User, test_user.id)
        assert user.subscription_status == "standard"
        assert user.stripe_customer_id == "cus_1"
        sub = db_session.query(Subscription).one()
        assert sub.stripe_subscription_id == "sub_1"
        assert sub.status == "active"
        assert int(sub.current_period_end.timestamp()) == PERIOD_END

        assert len(sent_emails) == 1
        to, email_type, lang, data = sent_emails[0]
        assert (to, email_type, lang) == (test_user.email, "upgrade", "ja")
        assert data["plan_name"] == "Standard"

    def test_checkout_without_matching_user(self, deliver, sent_emails):
        obj = {"customer": "cus_ghost", "subscription": "sub_ghost"}
        resp = deliver(_event("evt_ghost", "checkout.session.completed", obj))
        assert resp.json()["result"]["matched_user"] is False
        assert sent_emails == []

    def test_scheduled_cancellation_emails_once(self, deliver, make_user, db_session, sent_emails):
        user = make_user(plan="standard", stripe_customer_id="cus_1")
        obj = _subscription(cancel_at_period_end=True, metadata={"user_id": str(user.id)})

        deliver(_event("evt_upd_1", "customer.subscription.updated", obj))
        deliver(_event("evt_upd_2", "customer.subscription.updated", obj))

        db_session.expire_all()
        sub = db_session.query(Subscription).one()
        assert sub.cancel_at_period_end is True
        assert db_session.get(User, user.id).subscription_status == "standard"

        assert [e[1] for e in sent_emails] == ["downgrade_scheduled"]
        data = sent_emails[0][3]
        assert data["change_date"] == "2026-01-01"
        assert data["current_plan_name"] == "Standard"

    def test_cancel_at_matching_period_end_counts_as_scheduled(self, deliver, make_user, db_session, sent_emails):
        user = make_user(plan="standard", stripe_customer_id="cus_1")
        deliver(_event("evt_cancel_at", "customer.subscription.updated", _subscription(cancel_at=PERIOD_END)))

        db_session.expire_all()
        assert db_session.query(Subscription).filter(Subscription.user_id == user.id).one().cancel_at_period_end is True

    @pytest.mark.parametrize("event_type,status", [
        ("customer.subscription.deleted", "canceled"),
        ("customer.subscription.updated", "unpaid"),
    ])
    def test_ended_subscription_downgrades(self, deliver, make_user, db_session, sent_emails, event_type, status):
        user = make_user(plan="premium", stripe_customer_id="cus_1")
        deliver(_event("evt_end", event_type, _subscription(status=status)))

        db_session.expire_all()
        assert db_session.get(User, user.id).subscription_status == "free"
        sub = db_session.query(Subscription).one()
        assert sub.plan_type == "free"
        assert sub.canceled_at is not None
        assert [e[1] for e in sent_emails] == ["downgrade"]

    def test_subscription_found_by_stored_id(self, deliver, make_user, db_session, sent_emails):
        user = make_user(plan="standard")
        db_session.add(Subscription(user_id=user.id, stripe_subscription_id="sub_known", plan_type="standard"))
        db_session.commit()

        deliver(_event("evt_known", "customer.subscription.deleted", _subscription("sub_known", customer="cus_other")))

        db_session.expire_all()
        assert db_session.get(User, user.id).subscription_status == "free"


class TestInvoices:

    @pytest.fixture
    def known_subscription(self, make_user, db_session, monkeypatch):
        user = make_user(plan="free")
        db_session.add(Subscription(user_id=user.id, stripe_subscription_id="sub_9"))
        db_session.commit()
        monkeypatch.setattr(stripe.Subscription, "retrieve", lambda sub_id: _subscription(sub_id, customer="cus_9"))
        return user

    def test_payment_succeeded_sets_plan_from_price(self, deliver, known_subscription, db_session):
        resp = deliver(_event("evt_inv_ok", "invoice.payment_succeeded", {"subscription": "sub_9"}))
        assert resp.json()["result"]["plan"] == "standard"

        db_session.expire_all()
        assert db_session.get(User, known_subscription.id).subscription_status == "standard"
        assert db_session.query(Subscription).one().status == "active"

    def test_payment_failed_keeps_plan(self, deliver, known_subscription, db_session):
        resp = deliver(_event("evt_inv_fail", "invoice.payment_failed", {"subscription": "sub_9"}))
        assert resp.json()["result"]["payment_failed"] is True

        db_session.expire_all()
        assert db_session.get(User, known_subscription.id).subscription_status == "free"

    def test_invoice_without_subscription(self, deliver):
        resp = deliver(_event("evt_inv_none", "invoice.payment_succeeded", {}))
        assert resp.json()["result"]["matched_user"] is False

    def test_subscription_info_after_payment(self, client, deliver, known_subscription):
        deliver(_event("evt_inv_info", "invoice.payment_succeeded", {"subscription": "sub_9"}))
        body = client.get("/v1/billing/subscription", headers=auth_headers(known_subscription)).json()
        assert body["subscription_status"] == "standard"
        assert body["current_period_end"].startswith("2026-01-01")
        assert body["cancel_at_period_end"] is False
