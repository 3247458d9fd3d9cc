# core/subscription_reconciler.py

"""
Subscription reconciliation: brings a user's subscription and access
columns in line with Stripe.

One handler per Stripe event type. Handlers never raise for an account
that cannot be found; they log it and return a dropped result so the
webhook is still acknowledged. Store and Stripe errors propagate.

Every write is a plain field overwrite keyed by owner id, so replaying an
event (or receiving events out of order) cannot leave `subscription_tier`
and the access columns disagreeing.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from core.account_store import AccountStore
from core.logging_config import logger
from core.owner_resolution import OwnerHints, resolve_owner
from core.stripe_helpers import retrieve_subscription, to_plain_dict
from core.tier_access import access_fields, parse_purchasable_tier, tier_for_price
from models.enums import SubscriptionStatus, SubscriptionTier
from models.webhook_events import (
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    Subscription,
    SubscriptionCreated,
    SubscriptionDeleted,
    SubscriptionUpdated,
    owner_from_metadata,
)


@dataclass
class ReconcileResult:
    event_type: str
    applied: bool
    owner_id: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None


# ============================================================
# FIELD BUILDERS (shared with the verify/sync endpoints)
# ============================================================
def _timestamp_to_iso(ts: Optional[int]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def resolve_tier(subscription: Subscription) -> SubscriptionTier:
    """Metadata tier first, then the price id mapping."""
    tier = parse_purchasable_tier(subscription.metadata_tier)
    if tier is not None:
        return tier
    return tier_for_price(subscription.price_id)


def subscription_fields(subscription: Subscription, tier: SubscriptionTier) -> Dict[str, Any]:
    """Full write for an active/renewed/changed subscription."""
    return {
        "subscription_tier": tier.value,
        "subscription_status": subscription.status,
        "stripe_subscription_id": subscription.id,
        "stripe_customer_id": subscription.customer,
        "current_period_end": _timestamp_to_iso(subscription.period_end),
        "cancel_at_period_end": subscription.cancel_at_period_end,
        "pending_tier": None,
        **access_fields(tier),
    }


def canceled_fields() -> Dict[str, Any]:
    """Full write for a deleted subscription."""
    return {
        "subscription_tier": SubscriptionTier.none.value,
        "subscription_status": SubscriptionStatus.canceled.value,
        "cancel_at_period_end": False,
        **access_fields(SubscriptionTier.none),
    }


# ============================================================
# RECONCILER
# ============================================================
class SubscriptionReconciler:
    def __init__(
        self,
        store: Optional[AccountStore] = None,
        fetch_subscription: Callable[[str], Any] = retrieve_subscription,
    ):
        self.store = store or AccountStore()
        self.fetch_subscription = fetch_subscription

    # -----------------------------------------------------
    # helpers
    # -----------------------------------------------------
    def _drop(self, event_type: str, event_id: str, reason: str, **ids) -> ReconcileResult:
        details = ", ".join(f"{k}={v}" for k, v in ids.items())
        logger.error(
            f"Dropping {event_type} event {event_id}: {reason} ({details}) - "
            f"needs manual reconciliation"
        )
        return ReconcileResult(event_type=event_type, applied=False, reason=reason)

    def _apply(self, event_type: str, owner_id: str, fields: Dict[str, Any]) -> ReconcileResult:
        self.store.update_account(owner_id, fields)
        return ReconcileResult(event_type=event_type, applied=True, owner_id=owner_id, fields=fields)

    def _resolve(self, owner_id: Optional[str], customer_id: Optional[str]) -> Optional[str]:
        return resolve_owner(OwnerHints(owner_id=owner_id, customer_id=customer_id), self.store)

    # -----------------------------------------------------
    # checkout.session.completed
    # -----------------------------------------------------
    def checkout_completed(self, event: CheckoutSessionCompleted) -> ReconcileResult:
        session = event.data.object
        owner_id = self._resolve(session.owner_id, session.customer)
        if not owner_id:
            return self._drop(
                event.type, event.id, "no account for checkout session",
                session=session.id, customer=session.customer,
            )

        # Hint only; the subscription events assign the real tier
        fields: Dict[str, Any] = {}
        if session.customer:
            fields["stripe_customer_id"] = session.customer
        pending = parse_purchasable_tier(session.metadata_tier)
        if pending is not None:
            fields["pending_tier"] = pending.value

        if not fields:
            logger.info(f"Checkout session {session.id} for {owner_id} carried nothing to record")
            return ReconcileResult(event_type=event.type, applied=False, owner_id=owner_id, reason="nothing_to_record")

        result = self._apply(event.type, owner_id, fields)
        logger.info(f"Checkout completed for user {owner_id}, pending tier: {fields.get('pending_tier')}")
        return result

    # -----------------------------------------------------
    # customer.subscription.created / updated
    # -----------------------------------------------------
    def _upsert_subscription(self, event_type: str, event_id: str, subscription: Subscription) -> ReconcileResult:
        owner_id = self._resolve(subscription.owner_id, subscription.customer)
        if not owner_id:
            return self._drop(
                event_type, event_id, "no account for subscription",
                subscription=subscription.id, customer=subscription.customer,
            )

        tier = resolve_tier(subscription)
        result = self._apply(event_type, owner_id, subscription_fields(subscription, tier))
        logger.info(
            f"Subscription {subscription.id} reconciled for user {owner_id}: "
            f"tier={tier.value}, status={subscription.status}"
        )
        return result

    def subscription_created(self, event: SubscriptionCreated) -> ReconcileResult:
        return self._upsert_subscription(event.type, event.id, event.data.object)

    def subscription_updated(self, event: SubscriptionUpdated) -> ReconcileResult:
        return self._upsert_subscription(event.type, event.id, event.data.object)

    # -----------------------------------------------------
    # customer.subscription.deleted
    # -----------------------------------------------------
    def subscription_deleted(self, event: SubscriptionDeleted) -> ReconcileResult:
        subscription = event.data.object
        owner_id = self._resolve(subscription.owner_id, subscription.customer)
        if not owner_id:
            return self._drop(
                event.type, event.id, "no account for subscription",
                subscription=subscription.id, customer=subscription.customer,
            )

        result = self._apply(event.type, owner_id, canceled_fields())
        logger.info(f"Subscription {subscription.id} canceled for user {owner_id}")
        return result

    # -----------------------------------------------------
    # invoice.payment_failed
    # -----------------------------------------------------
    def payment_failed(self, event: InvoicePaymentFailed) -> ReconcileResult:
        invoice = event.data.object
        subscription_id = invoice.subscription_id
        if not subscription_id:
            return self._drop(event.type, event.id, "no subscription on failed invoice", invoice=invoice.id)

        subscription = to_plain_dict(self.fetch_subscription(subscription_id)) or {}
        owner_id = self._resolve(
            owner_from_metadata(subscription.get("metadata")),
            subscription.get("customer") or invoice.customer,
        )
        if not owner_id:
            return self._drop(
                event.type, event.id, "no account for subscription",
                subscription=subscription_id, customer=invoice.customer,
            )

        # Status only; access stays until the subscription is deleted
        result = self._apply(event.type, owner_id, {"subscription_status": SubscriptionStatus.past_due.value})
        logger.info(f"Payment failed for user {owner_id}, subscription: {subscription_id}")
        return result
