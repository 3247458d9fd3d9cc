# models/webhook_events.py

"""
Typed Stripe webhook events.

Only the fields the reconciler reads are declared; everything else on the
Stripe object is ignored. Each handled event type gets its own model so
handlers never reach into an untyped payload.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

# Metadata keys that carry the owner identifier, in priority order
OWNER_METADATA_KEYS = ("firebaseUID", "userId")
TIER_METADATA_KEY = "tier"


class StripePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


# -----------------------------------------------------
# Shared pieces
# -----------------------------------------------------
class Price(StripePayload):
    id: str


class SubscriptionItem(StripePayload):
    price: Optional[Price] = None
    current_period_end: Optional[int] = None


class SubscriptionItems(StripePayload):
    data: List[SubscriptionItem] = []


def owner_from_metadata(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    """Owner identifier stored in Stripe metadata at checkout time."""
    for key in OWNER_METADATA_KEYS:
        value = (metadata or {}).get(key)
        if value:
            return str(value)
    return None


# -----------------------------------------------------
# Stripe objects
# -----------------------------------------------------
class CheckoutSession(StripePayload):
    id: str
    customer: Optional[str] = None
    client_reference_id: Optional[str] = None
    subscription: Optional[str] = None
    metadata: Dict[str, Any] = {}

    @property
    def owner_id(self) -> Optional[str]:
        return owner_from_metadata(self.metadata) or self.client_reference_id

    @property
    def metadata_tier(self) -> Optional[str]:
        return self.metadata.get(TIER_METADATA_KEY)


class Subscription(StripePayload):
    id: str
    customer: str
    status: str
    metadata: Dict[str, Any] = {}
    items: SubscriptionItems = SubscriptionItems()
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False

    @property
    def owner_id(self) -> Optional[str]:
        return owner_from_metadata(self.metadata)

    @property
    def metadata_tier(self) -> Optional[str]:
        return self.metadata.get(TIER_METADATA_KEY)

    @property
    def price_id(self) -> Optional[str]:
        if self.items.data and self.items.data[0].price:
            return self.items.data[0].price.id
        return None

    @property
    def period_end(self) -> Optional[int]:
        # Newer API versions only report the period on the item
        if self.current_period_end is not None:
            return self.current_period_end
        if self.items.data:
            return self.items.data[0].current_period_end
        return None


class InvoiceSubscriptionDetails(StripePayload):
    subscription: Optional[str] = None


class InvoiceParent(StripePayload):
    subscription_details: Optional[InvoiceSubscriptionDetails] = None


class Invoice(StripePayload):
    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    parent: Optional[InvoiceParent] = None

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        if self.parent and self.parent.subscription_details:
            return self.parent.subscription_details.subscription
        return None


# -----------------------------------------------------
# Event envelopes
# -----------------------------------------------------
class CheckoutSessionData(StripePayload):
    object: CheckoutSession


class SubscriptionData(StripePayload):
    object: Subscription


class InvoiceData(StripePayload):
    object: Invoice


class CheckoutSessionCompleted(StripePayload):
    id: str
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionData


class SubscriptionCreated(StripePayload):
    id: str
    type: Literal["customer.subscription.created"]
    data: SubscriptionData


class SubscriptionUpdated(StripePayload):
    id: str
    type: Literal["customer.subscription.updated"]
    data: SubscriptionData


class SubscriptionDeleted(StripePayload):
    id: str
    type: Literal["customer.subscription.deleted"]
    data: SubscriptionData


class InvoicePaymentFailed(StripePayload):
    id: str
    type: Literal["invoice.payment_failed"]
    data: InvoiceData


class UnhandledEvent(StripePayload):
    id: Optional[str] = None
    type: Optional[str] = None


WebhookEvent = Annotated[
    Union[
        CheckoutSessionCompleted,
        SubscriptionCreated,
        SubscriptionUpdated,
        SubscriptionDeleted,
        InvoicePaymentFailed,
    ],
    Field(discriminator="type"),
]

HANDLED_EVENT_TYPES = frozenset({
    "checkout.session.completed",
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.payment_failed",
})

_event_adapter = TypeAdapter(WebhookEvent)


def parse_event(payload: Dict[str, Any]) -> Union[WebhookEvent, UnhandledEvent]:
    """
    Validate a decoded webhook payload into its typed event.

    Unknown event types come back as `UnhandledEvent` without further
    validation. A known type with a malformed body raises
    `pydantic.ValidationError`.
    """
    if payload.get("type") not in HANDLED_EVENT_TYPES:
        return UnhandledEvent(id=payload.get("id"), type=payload.get("type"))
    return _event_adapter.validate_python(payload)
