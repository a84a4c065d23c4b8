"""
Tests for subscription lifecycle transitions driven by payment events.
"""
from datetime import timedelta

import pytest

from app.core.plan_limits import DEFAULT_LIMITS, TierLimits
from app.models.user import SubscriptionStatus, Tier
from app.services.subscription_lifecycle import SubscriptionLifecycle, SubscriptionState, subscription_state
from app.utils.timeutils import as_utc
from conftest import FIXED_NOW


@pytest.fixture
def lifecycle(accounts):
    return SubscriptionLifecycle(accounts, clock=lambda: FIXED_NOW)


@pytest.fixture
def paid_user(lifecycle, accounts, trial_user):
    user = lifecycle.complete_upgrade(trial_user.id, period_end=FIXED_NOW + timedelta(days=10))
    return accounts.update_account(user.id, tokens_used=5000)


class TestCompleteUpgrade:
    def test_trial_to_paid_resets_usage(self, lifecycle, accounts, trial_user):
        accounts.update_account(trial_user.id, tokens_used=800)

        user = lifecycle.complete_upgrade(trial_user.id, payment_reference="cs_test_123")

        assert user.tier == Tier.PAID
        assert user.tokens_used == 0
        assert user.token_limit == DEFAULT_LIMITS.paid_token_limit
        assert user.subscription_status == SubscriptionStatus.ACTIVE
        assert user.payment_reference == "cs_test_123"
        assert as_utc(user.subscription_expires_at) == FIXED_NOW + timedelta(days=DEFAULT_LIMITS.paid_period_days)
        assert subscription_state(user, FIXED_NOW) == SubscriptionState.PAID_ACTIVE

    def test_uses_provider_period_end(self, lifecycle, trial_user):
        period_end = FIXED_NOW + timedelta(days=31, hours=2)

        user = lifecycle.complete_upgrade(trial_user.id, period_end=period_end)

        assert as_utc(user.subscription_expires_at) == period_end

    def test_custom_limits(self, accounts, trial_user):
        limits = TierLimits(paid_token_limit=5000, paid_period_days=7)
        lifecycle = SubscriptionLifecycle(accounts, limits=limits, clock=lambda: FIXED_NOW)

        user = lifecycle.complete_upgrade(trial_user.id)

        assert user.token_limit == 5000
        assert as_utc(user.subscription_expires_at) == FIXED_NOW + timedelta(days=7)

    def test_repeated_checkout_keeps_usage(self, lifecycle, accounts, trial_user):
        lifecycle.complete_upgrade(
            trial_user.id, period_end=FIXED_NOW + timedelta(days=30), payment_reference="cs_1"
        )
        accounts.update_account(trial_user.id, tokens_used=5000)

        user = lifecycle.complete_upgrade(
            trial_user.id, period_end=FIXED_NOW + timedelta(days=60), payment_reference="cs_1"
        )

        assert user.tokens_used == 5000
        assert as_utc(user.subscription_expires_at) == FIXED_NOW + timedelta(days=30)

    def test_checkout_after_lapse_starts_new_period(self, lifecycle, accounts, paid_user):
        accounts.update_account(paid_user.id, subscription_expires_at=FIXED_NOW - timedelta(days=1))

        user = lifecycle.complete_upgrade(paid_user.id, payment_reference="cs_2")

        assert user.tokens_used == 0
        assert user.payment_reference == "cs_2"
        assert subscription_state(user, FIXED_NOW) == SubscriptionState.PAID_ACTIVE

    def test_missing_account_id_is_ignored(self, lifecycle):
        assert lifecycle.complete_upgrade(None) is None

    def test_unknown_account_is_ignored(self, lifecycle):
        assert lifecycle.complete_upgrade("no-such-user") is None


class TestSubscriptionUpdated:
    def test_active_refreshes_expiry(self, lifecycle, paid_user):
        new_end = FIXED_NOW + timedelta(days=40)

        user = lifecycle.subscription_updated(paid_user.id, "active", period_end=new_end, subscription_id="sub_1")

        assert as_utc(user.subscription_expires_at) == new_end
        assert user.subscription_status == SubscriptionStatus.ACTIVE
        assert user.payment_reference == "sub_1"
        assert user.tokens_used == 5000

    def test_active_does_not_upgrade_trial(self, lifecycle, trial_user):
        user = lifecycle.subscription_updated(trial_user.id, "active", period_end=FIXED_NOW + timedelta(days=30))

        assert user.tier == Tier.TRIAL
        assert user.token_limit == DEFAULT_LIMITS.trial_token_limit

    @pytest.mark.parametrize("status", ["canceled", "cancelled", "unpaid"])
    def test_terminal_statuses_expire(self, lifecycle, paid_user, status):
        user = lifecycle.subscription_updated(paid_user.id, status)

        assert user.tier == Tier.PAID
        assert user.subscription_status == SubscriptionStatus.EXPIRED
        assert subscription_state(user, FIXED_NOW) == SubscriptionState.PAID_EXPIRED

    def test_other_statuses_change_nothing(self, lifecycle, paid_user):
        user = lifecycle.subscription_updated(paid_user.id, "past_due")

        assert user.subscription_status == SubscriptionStatus.ACTIVE


class TestSubscriptionDeleted:
    def test_downgrades_to_fresh_trial(self, lifecycle, paid_user):
        user = lifecycle.subscription_deleted(paid_user.id)

        assert user.tier == Tier.TRIAL
        assert user.tokens_used == 0
        assert user.token_limit == DEFAULT_LIMITS.trial_token_limit
        assert user.subscription_status == SubscriptionStatus.CANCELLED
        assert user.payment_reference is None
        assert subscription_state(user, FIXED_NOW) == SubscriptionState.TRIAL


class TestInvoicePaymentSucceeded:
    def test_renewal_resets_usage(self, lifecycle, paid_user):
        new_end = FIXED_NOW + timedelta(days=40)

        user = lifecycle.invoice_payment_succeeded(paid_user.id, "subscription_cycle", period_end=new_end)

        assert user.tokens_used == 0
        assert as_utc(user.subscription_expires_at) == new_end

    def test_first_invoice_keeps_usage(self, lifecycle, paid_user):
        user = lifecycle.invoice_payment_succeeded(
            paid_user.id, "subscription_create", period_end=FIXED_NOW + timedelta(days=30)
        )

        assert user.tokens_used == 5000
        assert as_utc(user.subscription_expires_at) == FIXED_NOW + timedelta(days=30)

    def test_extends_from_current_expiry_without_period_end(self, lifecycle, paid_user):
        user = lifecycle.invoice_payment_succeeded(paid_user.id, "subscription_cycle")

        expected = FIXED_NOW + timedelta(days=10 + DEFAULT_LIMITS.paid_period_days)
        assert as_utc(user.subscription_expires_at) == expected

    def test_extends_from_now_when_already_lapsed(self, lifecycle, accounts, paid_user):
        accounts.update_account(paid_user.id, subscription_expires_at=FIXED_NOW - timedelta(days=3))

        user = lifecycle.invoice_payment_succeeded(paid_user.id, "subscription_cycle")

        expected = FIXED_NOW + timedelta(days=DEFAULT_LIMITS.paid_period_days)
        assert as_utc(user.subscription_expires_at) == expected

    def test_trial_account_is_ignored(self, lifecycle, trial_user):
        user = lifecycle.invoice_payment_succeeded(trial_user.id, "subscription_cycle")

        assert user.tier == Tier.TRIAL
        assert user.subscription_expires_at is None


def test_payment_failed_leaves_access(lifecycle, paid_user):
    user = lifecycle.invoice_payment_failed(paid_user.id)

    assert user.subscription_status == SubscriptionStatus.ACTIVE
    assert subscription_state(user, FIXED_NOW) == SubscriptionState.PAID_ACTIVE


def test_state_expires_with_time(lifecycle, paid_user):
    assert subscription_state(paid_user, FIXED_NOW) == SubscriptionState.PAID_ACTIVE
    assert subscription_state(paid_user, FIXED_NOW + timedelta(days=11)) == SubscriptionState.PAID_EXPIRED
