# routers/stripe_webhooks.py

from typing import Callable, Dict, Optional
import json

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from core.errors import WebhookConfigError, WebhookVerificationError
from core.logging_config import logger
from core.stripe_helpers import construct_webhook_event
from core.subscription_reconciler import ReconcileResult, SubscriptionReconciler
from models.webhook_events import UnhandledEvent, parse_event

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"],
)


# Event type → reconciler handler
EVENT_HANDLERS: Dict[str, Callable[..., ReconcileResult]] = {
    "checkout.session.completed": SubscriptionReconciler.checkout_completed,
    "customer.subscription.created": SubscriptionReconciler.subscription_created,
    "customer.subscription.updated": SubscriptionReconciler.subscription_updated,
    "customer.subscription.deleted": SubscriptionReconciler.subscription_deleted,
    "invoice.payment_failed": SubscriptionReconciler.payment_failed,
}


def get_reconciler() -> SubscriptionReconciler:
    """One reconciler per delivery; nothing is shared between requests."""
    return SubscriptionReconciler()


@router.post("/stripe")
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    reconciler: SubscriptionReconciler = Depends(get_reconciler),
):
    """
    Handle Stripe billing webhook events.

    Processes:
    - checkout.session.completed
    - customer.subscription.created
    - customer.subscription.updated
    - customer.subscription.deleted
    - invoice.payment_failed

    **Setup:**
    1. Configure webhook endpoint in Stripe Dashboard: `https://your-api.com/webhooks/stripe`
    2. Select the events above
    3. Add webhook signing secret to `STRIPE_WEBHOOK_SECRET` environment variable

    **Responses:**
    - 200 `{"received": true}` for handled, dropped and ignored events
    - 400 on a missing or invalid signature (nothing is written)
    - 500 `{"error": ...}` on unexpected failures, so Stripe redelivers
    """
    # Raw body: signature is computed over the exact bytes
    body = await request.body()

    if not stripe_signature:
        return JSONResponse(status_code=400, content={"error": "Missing stripe-signature header"})

    try:
        construct_webhook_event(body, stripe_signature)
    except WebhookVerificationError as e:
        return JSONResponse(status_code=400, content={"error": f"Webhook Error: {e}"})
    except WebhookConfigError as e:
        return JSONResponse(status_code=500, content={"error": str(e)})

    try:
        event = parse_event(json.loads(body.decode("utf-8")))

        if isinstance(event, UnhandledEvent):
            logger.info(f"Unhandled Stripe event type: {event.type}")
            return {"received": True}

        logger.info(f"Received Stripe webhook event: {event.type} ({event.id})")
        handler = EVENT_HANDLERS[event.type]
        result = handler(reconciler, event)

        if not result.applied:
            logger.info(f"Stripe event {event.id} acknowledged without changes: {result.reason}")

        return {"received": True}

    except Exception as e:
        logger.error(f"Error processing webhook: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": str(e)})
