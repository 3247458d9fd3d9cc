# core/owner_resolution.py

"""
Owner resolution for Stripe events.

Strategies are tried in order and the first hit wins:
    1. owner id embedded in Stripe metadata (must exist in the store)
    2. Stripe customer id against the primary customer column
    3. Stripe customer id against the legacy customer column
"""

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from core.account_store import AccountStore, LEGACY_CUSTOMER_FIELD, PRIMARY_CUSTOMER_FIELD
from core.logging_config import logger


@dataclass(frozen=True)
class OwnerHints:
    """What an event tells us about its owner."""

    owner_id: Optional[str] = None
    customer_id: Optional[str] = None


class OwnerStrategy(Protocol):
    name: str

    def resolve(self, hints: OwnerHints, store: AccountStore) -> Optional[str]:
        ...


class MetadataOwner:
    name = "metadata"

    def resolve(self, hints: OwnerHints, store: AccountStore) -> Optional[str]:
        if not hints.owner_id:
            return None
        if store.get_account(hints.owner_id) is None:
            logger.warning(f"Metadata owner {hints.owner_id} has no account row")
            return None
        return hints.owner_id


class CustomerIdLookup:
    def __init__(self, field: str):
        self.field = field
        self.name = f"customer:{field}"

    def resolve(self, hints: OwnerHints, store: AccountStore) -> Optional[str]:
        if not hints.customer_id:
            return None
        return store.find_owner_by_customer_id(hints.customer_id, self.field)


DEFAULT_STRATEGIES: Sequence[OwnerStrategy] = (
    MetadataOwner(),
    CustomerIdLookup(PRIMARY_CUSTOMER_FIELD),
    CustomerIdLookup(LEGACY_CUSTOMER_FIELD),
)


def resolve_owner(
    hints: OwnerHints,
    store: AccountStore,
    strategies: Sequence[OwnerStrategy] = DEFAULT_STRATEGIES,
) -> Optional[str]:
    """Return the owner id from the first strategy that finds one, else None."""
    for strategy in strategies:
        owner_id = strategy.resolve(hints, store)
        if owner_id:
            logger.debug(f"Resolved owner {owner_id} via {strategy.name}")
            return owner_id
    return None
