# core/stripe_helpers.py

from typing import Optional

import stripe
from fastapi import HTTPException

from core.config import settings
from core.errors import WebhookConfigError, WebhookVerificationError
from core.logging_config import logger


def get_stripe_client():
    """Get Stripe client instance."""
    if not settings.STRIPE_SECRET_KEY:
        raise HTTPException(500, "Stripe secret key not configured")

    stripe.api_key = settings.STRIPE_SECRET_KEY
    return stripe


def construct_webhook_event(payload: bytes, signature: str):
    """
    Verify a Stripe webhook signature and return the Stripe event.

    Args:
        payload: Raw request body (must not be re-serialized)
        signature: Stripe-Signature header value

    Raises:
        WebhookVerificationError: signature mismatch or unreadable payload
        WebhookConfigError: webhook signing secret not configured
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET not configured - refusing webhook")
        raise WebhookConfigError("Stripe webhook secret not configured")

    try:
        return stripe.Webhook.construct_event(
            payload, signature, settings.STRIPE_WEBHOOK_SECRET
        )
    except ValueError as e:
        logger.error(f"Invalid payload in webhook: {e}")
        raise WebhookVerificationError(f"Invalid payload: {e}") from e
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid signature in webhook: {e}")
        raise WebhookVerificationError(str(e)) from e


def retrieve_subscription(subscription_id: str):
    """Fetch a subscription straight from Stripe (errors propagate)."""
    stripe_client = get_stripe_client()
    return stripe_client.Subscription.retrieve(subscription_id)


def retrieve_checkout_session(session_id: str):
    """Fetch a Checkout Session with its subscription expanded."""
    stripe_client = get_stripe_client()
    return stripe_client.checkout.Session.retrieve(session_id, expand=["subscription"])


def latest_subscription_for_customer(customer_id: str):
    """
    Most recent subscription (any status) for a Stripe customer.

    Returns:
        The Stripe subscription, or None if the customer has none
    """
    stripe_client = get_stripe_client()
    subscriptions = stripe_client.Subscription.list(
        customer=customer_id,
        status="all",
        limit=1
    )
    if not subscriptions.data:
        return None
    return subscriptions.data[0]


def to_plain_dict(stripe_object) -> Optional[dict]:
    """
    Convert a Stripe SDK object into plain nested dicts/lists so it can be
    validated by the webhook event models.
    """
    if stripe_object is None:
        return None
    if hasattr(stripe_object, "to_dict_recursive"):
        return stripe_object.to_dict_recursive()
    if hasattr(stripe_object, "to_dict"):
        return stripe_object.to_dict()
    return dict(stripe_object)
