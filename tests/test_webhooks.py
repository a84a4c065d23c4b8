"""
Stripe webhook tests. Events are signed with a test secret the same way
Stripe signs them, so signature verification runs for real.
"""
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone

import pytest
import stripe

from app.core.plan_limits import DEFAULT_LIMITS
from app.models.user import SubscriptionStatus, Tier
from app.services import payments
from app.services.repository import AccountRepository
from app.utils.timeutils import as_utc

WEBHOOK_SECRET = "whsec_test_secret"
PERIOD_END = datetime(2030, 1, 15, tzinfo=timezone.utc)


def _sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def _event(event_type: str, obj: dict) -> str:
    return json.dumps({"id": "evt_test", "object": "event", "type": event_type, "data": {"object": obj}})


@pytest.fixture(autouse=True)
def webhook_secret(monkeypatch):
    monkeypatch.setattr(payments, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)


@pytest.fixture
def repo(session_factory):
    session = session_factory()
    yield AccountRepository(session)
    session.close()


@pytest.fixture
def user(repo):
    return repo.create_account(email="subscriber@example.com")


@pytest.fixture
def subscriptions(monkeypatch, user):
    """Subscriptions returned by the patched Stripe lookup, keyed by id."""
    store = {
        "sub_1": {
            "id": "sub_1",
            "status": "active",
            "current_period_end": int(PERIOD_END.timestamp()),
            "metadata": {"userId": user.id},
        }
    }

    def fake_fetch(subscription_id):
        if subscription_id not in store:
            raise stripe.StripeError("No such subscription")
        return store[subscription_id]

    monkeypatch.setattr(payments, "fetch_subscription", fake_fetch)
    return store


def _post(client, payload: str, signature=None):
    headers = {"Content-Type": "application/json"}
    if signature is not False:
        headers["Stripe-Signature"] = signature or _sign(payload)
    return client.post("/webhooks/stripe", content=payload, headers=headers)


class TestVerification:
    def test_missing_signature(self, client):
        response = _post(client, _event("customer.subscription.deleted", {}), signature=False)

        assert response.status_code == 400
        assert response.json()["error"] == "WEBHOOK_VERIFICATION_FAILED"

    def test_wrong_secret(self, client, repo, user):
        payload = _event("customer.subscription.deleted", {"metadata": {"userId": user.id}})

        response = _post(client, payload, signature=_sign(payload, secret="whsec_other"))

        assert response.status_code == 400

    def test_secret_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(payments, "STRIPE_WEBHOOK_SECRET", "")

        response = _post(client, _event("customer.subscription.deleted", {}))

        assert response.status_code == 500
        assert response.json()["error"] == "CONFIGURATION_ERROR"


class TestCheckoutCompleted:
    def test_upgrades_with_subscription_period(self, client, repo, user, subscriptions):
        payload = _event(
            "checkout.session.completed",
            {"id": "cs_test_1", "subscription": "sub_1", "metadata": {"userId": user.id}},
        )

        response = _post(client, payload)

        assert response.json() == {"received": True}
        updated = repo.get_account(user.id)
        repo.db.refresh(updated)
        assert updated.tier == Tier.PAID
        assert updated.token_limit == DEFAULT_LIMITS.paid_token_limit
        assert updated.subscription_status == SubscriptionStatus.ACTIVE
        assert updated.payment_reference == "cs_test_1"
        assert as_utc(updated.subscription_expires_at) == PERIOD_END

    def test_falls_back_to_default_period(self, client, repo, user, subscriptions):
        payload = _event(
            "checkout.session.completed",
            {"id": "cs_test_2", "subscription": "sub_unknown", "metadata": {"userId": user.id}},
        )

        assert _post(client, payload).status_code == 200

        updated = repo.get_account(user.id)
        repo.db.refresh(updated)
        assert updated.tier == Tier.PAID
        expires_in = as_utc(updated.subscription_expires_at) - datetime.now(timezone.utc)
        assert timedelta(days=DEFAULT_LIMITS.paid_period_days - 1) < expires_in <= timedelta(
            days=DEFAULT_LIMITS.paid_period_days
        )

    def test_redelivered_event_keeps_usage(self, client, repo, user, subscriptions):
        payload = _event(
            "checkout.session.completed",
            {"id": "cs_test_1", "subscription": "sub_1", "metadata": {"userId": user.id}},
        )
        assert _post(client, payload).status_code == 200
        repo.update_account(user.id, tokens_used=5000)

        assert _post(client, payload).json() == {"received": True}

        updated = repo.get_account(user.id)
        repo.db.refresh(updated)
        assert updated.tokens_used == 5000
        assert updated.tier == Tier.PAID

    def test_missing_metadata_is_acknowledged(self, client):
        payload = _event("checkout.session.completed", {"id": "cs_test_3"})

        assert _post(client, payload).json() == {"received": True}


class TestInvoices:
    def test_renewal_resets_usage(self, client, repo, user, subscriptions):
        repo.update_account(user.id, tier=Tier.PAID, token_limit=DEFAULT_LIMITS.paid_token_limit, tokens_used=4321)
        payload = _event(
            "invoice.payment_succeeded",
            {"id": "in_1", "subscription": "sub_1", "billing_reason": "subscription_cycle"},
        )

        assert _post(client, payload).status_code == 200

        updated = repo.get_account(user.id)
        repo.db.refresh(updated)
        assert updated.tokens_used == 0
        assert as_utc(updated.subscription_expires_at) == PERIOD_END

    def test_subscription_id_from_invoice_parent(self, client, repo, user, subscriptions):
        repo.update_account(user.id, tier=Tier.PAID, token_limit=DEFAULT_LIMITS.paid_token_limit, tokens_used=10)
        payload = _event(
            "invoice.payment_succeeded",
            {
                "id": "in_2",
                "billing_reason": "subscription_cycle",
                "parent": {"subscription_details": {"subscription": "sub_1"}},
            },
        )

        assert _post(client, payload).status_code == 200

        updated = repo.get_account(user.id)
        repo.db.refresh(updated)
        assert updated.tokens_used == 0

    def test_lookup_failure_asks_for_retry(self, client, user, subscriptions):
        payload = _event(
            "invoice.payment_succeeded",
            {"id": "in_3", "subscription": "sub_missing", "billing_reason": "subscription_cycle"},
        )

        response = _post(client, payload)

        assert response.status_code == 503
        assert response.json()["error"] == "NETWORK_ERROR"

    def test_payment_failed_is_acknowledged(self, client, user, subscriptions):
        payload = _event("invoice.payment_failed", {"id": "in_4", "subscription": "sub_1"})

        assert _post(client, payload).json() == {"received": True}


def test_subscription_deleted_downgrades(client, repo, user):
    repo.update_account(user.id, tier=Tier.PAID, token_limit=DEFAULT_LIMITS.paid_token_limit, tokens_used=99)
    payload = _event("customer.subscription.deleted", {"id": "sub_1", "metadata": {"userId": user.id}})

    assert _post(client, payload).status_code == 200

    updated = repo.get_account(user.id)
    repo.db.refresh(updated)
    assert updated.tier == Tier.TRIAL
    assert updated.tokens_used == 0
    assert updated.token_limit == DEFAULT_LIMITS.trial_token_limit


def test_unhandled_event_type(client):
    payload = _event("customer.created", {"id": "cus_1"})

    assert _post(client, payload).json() == {"received": True}
