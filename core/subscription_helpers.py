# core/subscription_helpers.py

"""
Read-side helpers for athlete subscriptions: summaries and feature gates.

All checks read the subscription columns written by the reconciler.
"""

from typing import Any, Dict, Optional
from datetime import datetime, timezone

from core.account_store import AccountStore
from core.config import settings
from core.tier_access import UNLIMITED, access_for_tier, parse_tier, tier_satisfies
from models.enums import ACTIVE_STATUSES, SubscriptionStatus, SubscriptionTier
from models.subscription import (
    BillingPeriod,
    CoachLimitResult,
    FeatureFlags,
    SubscriptionSummary,
    VideoLimitResult,
    VideoUsage,
)

# Defaults for rows that never had a subscription written
NO_SUBSCRIPTION_ACCESS = access_for_tier(SubscriptionTier.none)


def start_of_month(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def account_tier(account: Optional[Dict[str, Any]]) -> SubscriptionTier:
    return parse_tier((account or {}).get("subscription_tier")) or SubscriptionTier.none


def account_status(account: Optional[Dict[str, Any]]) -> str:
    return (account or {}).get("subscription_status") or SubscriptionStatus.canceled.value


def has_active_subscription(account: Optional[Dict[str, Any]]) -> bool:
    return account_status(account) in ACTIVE_STATUSES


def _column(account: Dict[str, Any], name: str, default):
    value = account.get(name)
    return default if value is None else value


def get_subscription_summary(store: AccountStore, user_id: str) -> SubscriptionSummary:
    """
    Tier, status, monthly video usage, features and billing period for a user.
    A missing user gets the "no subscription" summary.
    """
    account = store.get_account(user_id)
    if account is None:
        return SubscriptionSummary()

    limit = _column(account, "max_video_submissions", NO_SUBSCRIPTION_ACCESS.max_video_submissions)
    used = store.count_submissions_since(user_id, start_of_month())
    remaining = UNLIMITED if limit == UNLIMITED else max(0, limit - used)

    billing = None
    if account.get("current_period_end"):
        billing = BillingPeriod(
            current_period_end=account["current_period_end"],
            cancel_at_period_end=bool(account.get("cancel_at_period_end")),
        )

    return SubscriptionSummary(
        tier=account_tier(account),
        status=account_status(account),
        is_active=has_active_subscription(account),
        video_submissions=VideoUsage(used=used, limit=limit, remaining=remaining),
        features=FeatureFlags(
            has_ai_assistant=_column(account, "has_ai_assistant", False),
            has_coach_feed=_column(account, "has_coach_feed", False),
            has_priority_queue=_column(account, "has_priority_queue", False),
            max_coaches=_column(account, "max_coaches", NO_SUBSCRIPTION_ACCESS.max_coaches),
        ),
        billing=billing,
    )


def check_coach_limit(store: AccountStore, user_id: str, current_count: int) -> CoachLimitResult:
    """Can the athlete follow one more coach?"""
    account = store.get_account(user_id)

    if account is None or not has_active_subscription(account):
        return CoachLimitResult(
            allowed=False,
            max_coaches=NO_SUBSCRIPTION_ACCESS.max_coaches,
            error="Active subscription required. Upgrade to follow more coaches.",
            upgrade_url=settings.UPGRADE_URL,
        )

    tier = account_tier(account)
    max_coaches = access_for_tier(tier).max_coaches

    if max_coaches == UNLIMITED:
        return CoachLimitResult(allowed=True, max_coaches=UNLIMITED)

    if current_count >= max_coaches:
        if tier_satisfies(tier, SubscriptionTier.basic):
            error = (
                f"You've reached your Basic limit of {max_coaches} coaches. "
                f"Upgrade to Elite to follow unlimited coaches."
            )
        else:
            error = (
                f"You've reached your Free tier limit of {max_coaches} coach. "
                f"Upgrade to Basic or Elite to follow more coaches."
            )
        return CoachLimitResult(
            allowed=False,
            max_coaches=max_coaches,
            error=error,
            upgrade_url=settings.UPGRADE_URL,
        )

    return CoachLimitResult(allowed=True, max_coaches=max_coaches)


def check_video_submission_limit(store: AccountStore, user_id: str) -> VideoLimitResult:
    """Can the athlete submit another video this month?"""
    account = store.get_account(user_id)

    if account is None or not has_active_subscription(account):
        return VideoLimitResult(allowed=False, error="Active subscription required for video submissions.")

    tier = account_tier(account)
    if not tier_satisfies(tier, SubscriptionTier.basic):
        return VideoLimitResult(allowed=False, error="Video submissions require a Basic or Elite subscription.")

    limit = access_for_tier(tier).max_video_submissions
    if limit == UNLIMITED:
        return VideoLimitResult(allowed=True, limit=UNLIMITED, remaining=UNLIMITED)

    used = store.count_submissions_since(user_id, start_of_month())
    remaining = max(0, limit - used)

    if used >= limit:
        return VideoLimitResult(
            allowed=False,
            used=used,
            limit=limit,
            remaining=0,
            error=(
                f"You've reached your monthly limit of {limit} video submissions. "
                f"Upgrade to Elite for unlimited submissions."
            ),
        )

    return VideoLimitResult(allowed=True, used=used, limit=limit, remaining=remaining)
