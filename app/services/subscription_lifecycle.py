"""
Subscription lifecycle: trial -> paid-active -> paid-expired / back to trial.

Transitions are driven by payment-provider events (checkout completed,
subscription updated/deleted, invoice paid/failed) and by the manual upgrade
action. Events whose account cannot be resolved are logged and ignored so the
provider never retries them into a failure state.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from app.core.plan_limits import DEFAULT_LIMITS, TierLimits
from app.models.user import SubscriptionStatus, Tier, User
from app.services.repository import AccountRepository
from app.utils.timeutils import as_utc, days_from_now, now_utc

logger = logging.getLogger(__name__)

# Invoice billing reasons that start a new paid period
RENEWAL_BILLING_REASONS = frozenset({"subscription_cycle", "subscription_update"})


class SubscriptionState(str, Enum):
    TRIAL = "trial"
    PAID_ACTIVE = "paid-active"
    PAID_EXPIRED = "paid-expired"
    PAID_CANCELLED = "paid-cancelled"


def subscription_state(user: User, at: Optional[datetime] = None) -> SubscriptionState:
    """Derive the lifecycle state from tier, status and (if given) the expiry instant."""
    if Tier(user.tier) != Tier.PAID:
        return SubscriptionState.TRIAL
    if user.subscription_status == SubscriptionStatus.CANCELLED:
        return SubscriptionState.PAID_CANCELLED
    if user.subscription_status == SubscriptionStatus.EXPIRED:
        return SubscriptionState.PAID_EXPIRED
    expires_at = as_utc(user.subscription_expires_at)
    if at is not None and expires_at is not None and expires_at <= as_utc(at):
        return SubscriptionState.PAID_EXPIRED
    return SubscriptionState.PAID_ACTIVE


class SubscriptionLifecycle:
    def __init__(
        self,
        accounts: AccountRepository,
        limits: TierLimits = DEFAULT_LIMITS,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.accounts = accounts
        self.limits = limits
        self.clock = clock

    def _resolve(self, account_id: Optional[str], event: str) -> Optional[User]:
        if not account_id:
            logger.warning("[%s] No account id in event metadata, skipping", event)
            return None
        user = self.accounts.get_account(str(account_id))
        if not user:
            logger.warning("[%s] Account %s not found, skipping", event, account_id)
            return None
        return user

    def complete_upgrade(
        self,
        account_id: Optional[str],
        period_end: Optional[datetime] = None,
        payment_reference: Optional[str] = None,
    ) -> Optional[User]:
        """
        Checkout completed or manual upgrade.
        Usage starts from zero for the new paid period.

        A checkout (payment_reference given) landing on an account that is
        already paid-active is a repeat of one already applied, either a
        redelivered webhook or the verify call racing it. New checkouts cannot
        be opened while paid-active, so the account is returned unchanged.
        """
        user = self._resolve(account_id, "upgrade")
        if not user:
            return None
        if payment_reference is not None and subscription_state(user, self.clock()) == SubscriptionState.PAID_ACTIVE:
            logger.info(
                "User %s already paid-active, ignoring repeated upgrade for %s", user.id, payment_reference
            )
            return user

        expires_at = period_end or days_from_now(self.limits.paid_period_days, self.clock())
        patch = dict(
            tier=Tier.PAID,
            token_limit=self.limits.paid_token_limit,
            tokens_used=0,
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_expires_at=expires_at,
        )
        if payment_reference is not None:
            patch["payment_reference"] = payment_reference
        user = self.accounts.update_account(user.id, **patch)
        logger.info("Upgraded user %s to paid until %s", user.id, expires_at.isoformat())
        return user

    def subscription_updated(
        self,
        account_id: Optional[str],
        status: Optional[str],
        period_end: Optional[datetime] = None,
        subscription_id: Optional[str] = None,
    ) -> Optional[User]:
        user = self._resolve(account_id, "subscription.updated")
        if not user:
            return None

        status = (status or "").lower()
        if status == "active":
            if Tier(user.tier) != Tier.PAID:
                logger.info("Ignoring active subscription update for trial user %s", user.id)
                return user
            patch = dict(
                subscription_status=SubscriptionStatus.ACTIVE,
                token_limit=self.limits.paid_token_limit,
            )
            if period_end is not None:
                patch["subscription_expires_at"] = period_end
            if subscription_id:
                patch["payment_reference"] = subscription_id
            return self.accounts.update_account(user.id, **patch)

        if status in ("canceled", "cancelled", "unpaid"):
            patch = dict(subscription_status=SubscriptionStatus.EXPIRED)
            if subscription_id:
                patch["payment_reference"] = subscription_id
            user = self.accounts.update_account(user.id, **patch)
            logger.info("Subscription for user %s marked expired (provider status %s)", user.id, status)
            return user

        logger.info("No state change for user %s on subscription status %r", user.id, status)
        return user

    def subscription_deleted(self, account_id: Optional[str]) -> Optional[User]:
        """Downgrade to trial with a fresh trial allowance."""
        user = self._resolve(account_id, "subscription.deleted")
        if not user:
            return None
        user = self.accounts.update_account(
            user.id,
            tier=Tier.TRIAL,
            token_limit=self.limits.trial_token_limit,
            tokens_used=0,
            subscription_status=SubscriptionStatus.CANCELLED,
            payment_reference=None,
        )
        logger.info("Downgraded user %s to trial", user.id)
        return user

    def invoice_payment_succeeded(
        self,
        account_id: Optional[str],
        billing_reason: Optional[str],
        period_end: Optional[datetime] = None,
    ) -> Optional[User]:
        """
        Extend the paid period. Only renewal invoices reset usage; other
        invoices (e.g. the first one) extend expiry and limit but keep usage.
        """
        user = self._resolve(account_id, "invoice.payment_succeeded")
        if not user:
            return None
        if Tier(user.tier) != Tier.PAID:
            logger.info("Ignoring invoice payment for trial user %s", user.id)
            return user

        if period_end is None:
            # Extend from whichever is later: now or the current expiry
            current = as_utc(user.subscription_expires_at)
            base = max(filter(None, [current, self.clock()]))
            period_end = days_from_now(self.limits.paid_period_days, base)

        patch = dict(
            subscription_status=SubscriptionStatus.ACTIVE,
            subscription_expires_at=period_end,
            token_limit=self.limits.paid_token_limit,
        )
        is_renewal = billing_reason in RENEWAL_BILLING_REASONS
        if is_renewal:
            patch["tokens_used"] = 0
        user = self.accounts.update_account(user.id, **patch)
        if is_renewal:
            logger.info("Token usage reset for user %s on subscription renewal", user.id)
        return user

    def invoice_payment_failed(self, account_id: Optional[str]) -> Optional[User]:
        """Reported only; access is left as is."""
        user = self._resolve(account_id, "invoice.payment_failed")
        if user:
            logger.warning("Payment failed for user %s", user.id)
        return user
