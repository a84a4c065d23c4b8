"""
Upgrade routes: Stripe Checkout for real payments, plus the manual upgrade
used by the demo flow.
"""
import logging

import stripe
from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from app.core.errors import Conflict, Forbidden, InvalidInput, NotFound, PaymentProviderError
from app.dependencies.auth import get_current_user_id
from app.dependencies.services import get_account_repository, get_subscription_lifecycle
from app.services import payments
from app.services.repository import AccountRepository
from app.services.subscription_lifecycle import SubscriptionLifecycle, SubscriptionState, subscription_state
from app.utils.timeutils import now_utc

logger = logging.getLogger(__name__)

router = APIRouter()


def _upgrade_response(user) -> dict:
    return {
        "message": "Upgraded to paid successfully",
        "userType": user.tier.value,
        "tokenLimit": user.token_limit,
        "tokensUsed": user.tokens_used,
        "subscriptionExpiresAt": user.subscription_expires_at.isoformat() if user.subscription_expires_at else None,
    }


@router.post("/upgrade")
def manual_upgrade(
    user_id: str = Depends(get_current_user_id),
    lifecycle: SubscriptionLifecycle = Depends(get_subscription_lifecycle),
):
    """Demo upgrade: switch to paid for one period without a payment."""
    user = lifecycle.complete_upgrade(user_id)
    if not user:
        raise NotFound("User not found")
    return _upgrade_response(user)


@router.post("/create-checkout-session")
def create_checkout_session(
    user_id: str = Depends(get_current_user_id),
    accounts: AccountRepository = Depends(get_account_repository),
):
    """
    Create a Stripe Checkout Session for the paid subscription.
    Returns the checkout URL to redirect the user to.
    """
    user = accounts.get_account(user_id)
    if not user:
        raise NotFound("User not found")
    if subscription_state(user, now_utc()) == SubscriptionState.PAID_ACTIVE:
        raise Conflict("User already has an active subscription")

    try:
        session = payments.create_checkout_session(user.id, user.email)
    except stripe.StripeError as e:
        logger.error("Stripe error creating checkout session: %s", e)
        raise PaymentProviderError(f"Failed to create checkout session: {e}", original_exception=e) from e

    if not session.get("url"):
        raise PaymentProviderError("Failed to create checkout session URL")
    return {"sessionId": session["id"], "url": session["url"]}


class VerifyCheckoutRequest(BaseModel):
    session_id: str


@router.post("/verify-checkout-session")
def verify_checkout_session(
    request: VerifyCheckoutRequest = Body(...),
    user_id: str = Depends(get_current_user_id),
    lifecycle: SubscriptionLifecycle = Depends(get_subscription_lifecycle),
):
    """
    Called by the frontend after a successful checkout so the upgrade shows
    up immediately instead of waiting for the webhook.
    """
    try:
        checkout_session = payments.retrieve_checkout_session(request.session_id)
    except stripe.StripeError as e:
        logger.error("Stripe error verifying checkout session: %s", e)
        raise PaymentProviderError(f"Failed to verify checkout session: {e}", original_exception=e) from e

    if payments.account_id_from_metadata(checkout_session) != user_id:
        raise Forbidden("This checkout session does not belong to you")
    if checkout_session.get("payment_status") != "paid":
        raise InvalidInput("Checkout session is not paid")

    period_end = None
    subscription_id = payments.id_of(checkout_session.get("subscription"))
    if subscription_id:
        try:
            period_end = payments.subscription_period_end(payments.fetch_subscription(subscription_id))
        except stripe.StripeError as e:
            logger.warning("Could not retrieve subscription %s, using fallback period: %s", subscription_id, e)

    user = lifecycle.complete_upgrade(user_id, period_end=period_end, payment_reference=checkout_session.get("id"))
    if not user:
        raise NotFound("User not found")
    return _upgrade_response(user)
