"""
Webhooks for the payment provider (Stripe).

Register this URL in the Stripe dashboard:
https://your-backend.com/webhooks/stripe

The signature is verified before the body is parsed or any account is
touched. Events we cannot map to an account are acknowledged and logged so
Stripe does not keep retrying them.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

import stripe
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool

from app.core.errors import NetworkError
from app.dependencies.services import get_subscription_lifecycle
from app.services import payments
from app.services.subscription_lifecycle import SubscriptionLifecycle

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    lifecycle: SubscriptionLifecycle = Depends(get_subscription_lifecycle),
):
    payload = await request.body()
    # Database and Stripe calls block; keep them off the event loop
    return await run_in_threadpool(_process_event, lifecycle, payload, request.headers.get("stripe-signature"))


def _process_event(lifecycle: SubscriptionLifecycle, payload: bytes, signature: Optional[str]) -> dict:
    event = payments.verify_webhook_event(payload, signature)

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    logger.info("[Stripe webhook] type=%s id=%s", event_type, event.get("id"))

    if event_type == "checkout.session.completed":
        _handle_checkout_completed(lifecycle, obj)
    elif event_type == "customer.subscription.updated":
        lifecycle.subscription_updated(
            payments.account_id_from_metadata(obj),
            obj.get("status"),
            period_end=payments.subscription_period_end(obj),
            subscription_id=obj.get("id"),
        )
    elif event_type == "customer.subscription.deleted":
        lifecycle.subscription_deleted(payments.account_id_from_metadata(obj))
    elif event_type == "invoice.payment_succeeded":
        account_id, period_end = _resolve_invoice(obj)
        lifecycle.invoice_payment_succeeded(account_id, obj.get("billing_reason"), period_end=period_end)
    elif event_type == "invoice.payment_failed":
        account_id, _ = _resolve_invoice(obj)
        lifecycle.invoice_payment_failed(account_id)
    else:
        logger.info("[Stripe webhook] Unhandled event type: %s", event_type)

    return {"received": True}


def _handle_checkout_completed(lifecycle: SubscriptionLifecycle, session: dict) -> None:
    """Checkout paid: upgrade, using the subscription's real period end when we can get it."""
    account_id = payments.account_id_from_metadata(session)
    if not account_id:
        logger.warning("[Stripe webhook] No userId in checkout session metadata")
        return

    period_end = None
    subscription_id = payments.id_of(session.get("subscription"))
    if subscription_id:
        try:
            period_end = payments.subscription_period_end(payments.fetch_subscription(subscription_id))
        except stripe.StripeError as e:
            # Fall back to the default paid period
            logger.error("[Stripe webhook] Error retrieving subscription %s: %s", subscription_id, e)

    lifecycle.complete_upgrade(account_id, period_end=period_end, payment_reference=session.get("id"))


def _resolve_invoice(invoice: dict) -> Tuple[Optional[str], Optional[datetime]]:
    """
    Invoices don't carry our account id directly; it lives on the
    subscription's metadata. Returns (account_id, period_end).
    """
    subscription_id = payments.invoice_subscription_id(invoice)
    if not subscription_id:
        logger.info("[Stripe webhook] Invoice %s has no subscription, skipping", invoice.get("id"))
        return None, None
    try:
        subscription = payments.fetch_subscription(subscription_id)
    except stripe.StripeError as e:
        # Let Stripe retry later rather than silently dropping a renewal
        logger.error("[Stripe webhook] Error retrieving subscription %s: %s", subscription_id, e)
        raise NetworkError("Could not retrieve subscription from Stripe", original_exception=e) from e
    return payments.account_id_from_metadata(subscription), payments.subscription_period_end(subscription)
