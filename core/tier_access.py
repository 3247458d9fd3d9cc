# core/tier_access.py

"""
Tier → access grant mapping.

This is the only place feature limits are defined. Every write that changes
`subscription_tier` must take its access columns from `access_fields()` so
the two can never drift apart.

Rules:
- free / none: no video submissions, 1 coach
- basic: 2 video submissions per month, up to 3 coaches
- elite: unlimited submissions and coaches (-1), all premium features
"""

from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from core.config import settings
from core.logging_config import logger
from models.enums import SubscriptionTier

UNLIMITED = -1


class AccessGrant(BaseModel):
    """Feature flags and limits derived from a tier."""

    model_config = ConfigDict(frozen=True)

    max_video_submissions: int
    has_ai_assistant: bool
    has_coach_feed: bool
    has_priority_queue: bool
    max_coaches: int


# ============================================================
# TIER → ACCESS TABLE
# ============================================================
TIER_ACCESS: Mapping[SubscriptionTier, AccessGrant] = MappingProxyType({
    SubscriptionTier.free: AccessGrant(
        max_video_submissions=0,
        has_ai_assistant=False,
        has_coach_feed=False,
        has_priority_queue=False,
        max_coaches=1,
    ),
    SubscriptionTier.basic: AccessGrant(
        max_video_submissions=2,
        has_ai_assistant=False,
        has_coach_feed=False,
        has_priority_queue=False,
        max_coaches=3,
    ),
    SubscriptionTier.elite: AccessGrant(
        max_video_submissions=UNLIMITED,
        has_ai_assistant=True,
        has_coach_feed=True,
        has_priority_queue=True,
        max_coaches=UNLIMITED,
    ),
    SubscriptionTier.none: AccessGrant(
        max_video_submissions=0,
        has_ai_assistant=False,
        has_coach_feed=False,
        has_priority_queue=False,
        max_coaches=1,
    ),
})

# Feature hierarchy for gate checks ("free" and "none" rank the same)
TIER_RANK: Mapping[SubscriptionTier, int] = MappingProxyType({
    SubscriptionTier.none: 0,
    SubscriptionTier.free: 0,
    SubscriptionTier.basic: 1,
    SubscriptionTier.elite: 2,
})


def access_for_tier(tier: Union[SubscriptionTier, str]) -> AccessGrant:
    """
    Return the access grant for a tier.

    Raises:
        ValueError: if `tier` is not a known tier value
    """
    return TIER_ACCESS[SubscriptionTier(tier)]


def access_fields(tier: Union[SubscriptionTier, str]) -> Dict[str, Any]:
    """Full access column block for a `users` row update."""
    return access_for_tier(tier).model_dump()


def parse_tier(value: Optional[str]) -> Optional[SubscriptionTier]:
    """
    Parse a tier string from a users row or Stripe metadata.
    Returns None for missing or unrecognised values.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        return SubscriptionTier(value.strip().lower())
    except ValueError:
        return None


# Tiers a Stripe subscription can carry; "none" only results from cancellation
PURCHASABLE_TIERS = frozenset({
    SubscriptionTier.free,
    SubscriptionTier.basic,
    SubscriptionTier.elite,
})


def parse_purchasable_tier(value: Optional[str]) -> Optional[SubscriptionTier]:
    """Like `parse_tier`, but rejects "none" coming from Stripe metadata."""
    tier = parse_tier(value)
    return tier if tier in PURCHASABLE_TIERS else None


def price_tier_map() -> Dict[str, SubscriptionTier]:
    """Configured price id → tier lookup (unset prices are skipped)."""
    configured = {
        settings.STRIPE_ATHLETE_FREE_PRICE_ID: SubscriptionTier.free,
        settings.STRIPE_ATHLETE_BASIC_PRICE_ID: SubscriptionTier.basic,
        settings.STRIPE_ATHLETE_ELITE_PRICE_ID: SubscriptionTier.elite,
    }
    return {price_id: tier for price_id, tier in configured.items() if price_id}


def tier_for_price(price_id: Optional[str]) -> SubscriptionTier:
    """
    Resolve a tier from a Stripe price id.

    Closed mapping: anything not configured resolves to `free`.
    """
    tier = price_tier_map().get(price_id) if price_id else None
    if tier is None:
        logger.warning(f"Unmapped Stripe price id {price_id!r} - defaulting tier to free")
        return SubscriptionTier.free
    return tier


def tier_satisfies(tier: Union[SubscriptionTier, str], required: Union[SubscriptionTier, str]) -> bool:
    """True if `tier` is at or above `required` in the feature hierarchy."""
    return TIER_RANK[SubscriptionTier(tier)] >= TIER_RANK[SubscriptionTier(required)]
