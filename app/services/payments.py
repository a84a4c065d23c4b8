"""
Thin wrapper around the Stripe SDK.
Routes call these functions instead of the SDK so payloads come back as
plain dicts and tests can patch a single seam.
"""
import json
import logging
import os
from datetime import datetime
from typing import Optional

import stripe

from app.core.errors import ConfigurationError, WebhookVerificationFailed
from app.utils.timeutils import from_unix

logger = logging.getLogger(__name__)

# Initialize Stripe
stripe.api_key = os.getenv("STRIPE_SECRET_KEY")
STRIPE_PRICE_ID = os.getenv("STRIPE_PRICE_ID", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Checkout and subscription metadata key carrying our account id
ACCOUNT_METADATA_KEY = "userId"


def _as_dict(obj) -> dict:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def id_of(value) -> Optional[str]:
    """Expandable Stripe fields arrive either as an id string or as an object."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("id")
    return getattr(value, "id", None) or str(value)


def account_id_from_metadata(obj: dict) -> Optional[str]:
    metadata = obj.get("metadata") or {}
    return metadata.get(ACCOUNT_METADATA_KEY)


def subscription_period_end(subscription: dict) -> Optional[datetime]:
    """
    End of the current billing period. Newer API versions moved
    current_period_end from the subscription onto its items.
    """
    period_end = subscription.get("current_period_end")
    if period_end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")
    return from_unix(period_end)


def invoice_subscription_id(invoice: dict) -> Optional[str]:
    subscription_id = id_of(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return id_of(details.get("subscription"))


def fetch_subscription(subscription_id: str) -> dict:
    return _as_dict(stripe.Subscription.retrieve(subscription_id))


def create_checkout_session(user_id: str, email: str) -> dict:
    if not STRIPE_PRICE_ID:
        raise ConfigurationError("Payment system not configured. Please contact support.")

    checkout_session = stripe.checkout.Session.create(
        mode="subscription",
        payment_method_types=["card"],
        line_items=[
            {
                "price": STRIPE_PRICE_ID,
                "quantity": 1,
            }
        ],
        success_url=f"{FRONTEND_URL}/?upgrade=success&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{FRONTEND_URL}/",
        customer_email=email,
        metadata={
            ACCOUNT_METADATA_KEY: user_id,
            "userEmail": email,
        },
        subscription_data={
            "metadata": {
                ACCOUNT_METADATA_KEY: user_id,
            }
        },
    )
    logger.info("Created Stripe Checkout Session %s for user %s", checkout_session.id, user_id)
    return {"id": checkout_session.id, "url": checkout_session.url}


def retrieve_checkout_session(session_id: str) -> dict:
    return _as_dict(stripe.checkout.Session.retrieve(session_id))


def verify_webhook_event(payload: bytes, signature: Optional[str]) -> dict:
    """
    Check the Stripe-Signature header against the raw body.
    Nothing about the event may be trusted (or acted on) before this passes.
    """
    if not STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not set")
        raise ConfigurationError("Webhook secret not configured")
    if not signature:
        raise WebhookVerificationFailed("Missing stripe signature")
    try:
        stripe.Webhook.construct_event(payload, signature, STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("Webhook signature verification failed: %s", e)
        raise WebhookVerificationFailed(original_exception=e) from e
    return json.loads(payload)
