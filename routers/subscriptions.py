# routers/subscriptions.py

from typing import Any, Dict, Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query

from dependencies.auth import get_current_user, requires_role, CurrentUser
from core.account_store import AccountStore, LEGACY_CUSTOMER_FIELD, PRIMARY_CUSTOMER_FIELD
from core.errors import handle_supabase_error
from core.logging_config import logger
from core.stripe_helpers import (
    latest_subscription_for_customer,
    retrieve_checkout_session,
    retrieve_subscription,
    to_plain_dict,
)
from core.subscription_helpers import (
    check_coach_limit,
    check_video_submission_limit,
    get_subscription_summary,
    has_active_subscription,
)
from core.subscription_reconciler import canceled_fields, resolve_tier, subscription_fields
from core.tier_access import parse_purchasable_tier, parse_tier
from models.enums import ACTIVE_STATUSES, SubscriptionStatus, SubscriptionTier, UserRole
from models.subscription import (
    CoachLimitResult,
    SubscriptionSummary,
    SyncResult,
    VerifySessionRequest,
    VerifySessionResponse,
    VideoLimitResult,
)
from models.webhook_events import Subscription, owner_from_metadata

router = APIRouter(
    prefix="/subscriptions",
    tags=["Subscriptions"],
)


def get_account_store() -> AccountStore:
    return AccountStore()


def _load_account(store: AccountStore, user_id: str) -> Dict[str, Any]:
    try:
        account = store.get_account(user_id)
    except Exception as e:
        raise handle_supabase_error(e, "Failed to load account")
    if account is None:
        raise HTTPException(404, "User not found")
    return account


# -----------------------------------------------------
# Read side
# -----------------------------------------------------
@router.get("/me", response_model=SubscriptionSummary)
def get_my_subscription(
    current_user: CurrentUser = Depends(get_current_user),
    store: AccountStore = Depends(get_account_store),
):
    """
    Subscription summary for the current user: tier, status, this month's
    video submission usage, feature flags and billing period.
    """
    try:
        return get_subscription_summary(store, current_user.id)
    except Exception as e:
        raise handle_supabase_error(e, "Failed to load subscription summary")


@router.get("/me/coach-limit", response_model=CoachLimitResult)
def get_my_coach_limit(
    current_count: int = Query(..., ge=0, description="Coaches the athlete currently follows"),
    current_user: CurrentUser = Depends(get_current_user),
    store: AccountStore = Depends(get_account_store),
):
    try:
        return check_coach_limit(store, current_user.id, current_count)
    except Exception as e:
        raise handle_supabase_error(e, "Failed to check coach limit")


@router.get("/me/video-limit", response_model=VideoLimitResult)
def get_my_video_limit(
    current_user: CurrentUser = Depends(get_current_user),
    store: AccountStore = Depends(get_account_store),
):
    try:
        return check_video_submission_limit(store, current_user.id)
    except Exception as e:
        raise handle_supabase_error(e, "Failed to check video submission limit")


# -----------------------------------------------------
# POST /subscriptions/verify-session
# -----------------------------------------------------
@router.post("/verify-session", response_model=VerifySessionResponse)
def verify_checkout_session(
    payload: VerifySessionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    store: AccountStore = Depends(get_account_store),
):
    """
    Verify a completed Stripe Checkout directly with Stripe and apply it.

    Called by the checkout success page so the athlete does not have to wait
    for the webhook. Applies the same write as `customer.subscription.updated`.

    Lookup order:
    1. The Checkout Session (if `session_id` is given); its owner must match the caller
    2. The most recent subscription for the stored Stripe customer id
    """
    user_id = current_user.id
    account = _load_account(store, user_id)

    if has_active_subscription(account):
        logger.info(f"User {user_id} already has an active subscription")
        return VerifySessionResponse(
            verified=True,
            already_active=True,
            tier=parse_tier(account.get("subscription_tier")),
            status=account.get("subscription_status"),
            is_active=True,
        )

    raw_subscription: Optional[Dict[str, Any]] = None
    session_tier: Optional[SubscriptionTier] = None

    if payload.session_id:
        try:
            session = to_plain_dict(retrieve_checkout_session(payload.session_id))
        except stripe.StripeError as e:
            logger.warning(f"Could not retrieve checkout session {payload.session_id}: {e}")
            session = None

        if session:
            session_owner = owner_from_metadata(session.get("metadata")) or session.get("client_reference_id")
            if session_owner and session_owner != user_id:
                logger.warning(f"Checkout session {payload.session_id} belongs to a different user")
                raise HTTPException(403, "Session mismatch")

            session_tier = parse_purchasable_tier((session.get("metadata") or {}).get("tier"))
            linked = session.get("subscription")
            if isinstance(linked, str):
                try:
                    raw_subscription = to_plain_dict(retrieve_subscription(linked))
                except stripe.StripeError as e:
                    logger.warning(f"Could not retrieve subscription {linked}: {e}")
            elif isinstance(linked, dict):
                raw_subscription = linked

    customer_id = account.get(PRIMARY_CUSTOMER_FIELD)
    if raw_subscription is None and customer_id:
        try:
            raw_subscription = to_plain_dict(latest_subscription_for_customer(customer_id))
        except stripe.StripeError as e:
            logger.warning(f"Could not list subscriptions for customer {customer_id}: {e}")

    if raw_subscription is None:
        logger.info(f"No subscription found for user {user_id}")
        return VerifySessionResponse(
            verified=False,
            message=(
                "No active subscription found. If you just completed checkout, "
                "please wait a moment and try again."
            ),
        )

    subscription = Subscription.model_validate(raw_subscription)
    tier = parse_purchasable_tier(subscription.metadata_tier) or session_tier or resolve_tier(subscription)
    is_active = subscription.status in ACTIVE_STATUSES

    if is_active:
        try:
            store.update_account(user_id, subscription_fields(subscription, tier))
        except Exception as e:
            raise handle_supabase_error(e, "Failed to apply subscription")
        logger.info(f"Verified checkout for user {user_id}: {tier.value} tier, status: {subscription.status}")
    else:
        logger.info(f"Subscription {subscription.id} found for user {user_id} but not active: {subscription.status}")

    return VerifySessionResponse(
        verified=True,
        tier=tier,
        status=subscription.status,
        is_active=is_active,
    )


# -----------------------------------------------------
# POST /subscriptions/admin/{user_id}/sync
# -----------------------------------------------------
@router.post("/admin/{user_id}/sync", response_model=SyncResult)
def admin_sync_subscription(
    user_id: str,
    current_user: CurrentUser = Depends(requires_role([UserRole.admin.value])),
    store: AccountStore = Depends(get_account_store),
):
    """
    Re-pull a user's subscription from Stripe and overwrite their
    subscription and access columns.

    Manual follow-up for webhook events that were dropped because no
    account could be resolved at delivery time.
    """
    account = _load_account(store, user_id)

    customer_id = account.get(PRIMARY_CUSTOMER_FIELD) or account.get(LEGACY_CUSTOMER_FIELD)
    if not customer_id:
        raise HTTPException(400, "User has no Stripe customer ID. Cannot sync.")

    try:
        latest = latest_subscription_for_customer(customer_id)
    except stripe.StripeError as e:
        logger.warning(f"Error syncing subscription for user {user_id}: {e}")
        raise HTTPException(400, f"Failed to verify subscription: {e}")

    if latest is None:
        return SyncResult(user_id=user_id, applied=False, reason="no_subscription")

    subscription = Subscription.model_validate(to_plain_dict(latest))
    if subscription.status == SubscriptionStatus.canceled.value:
        tier = SubscriptionTier.none
        fields = canceled_fields()
    else:
        tier = resolve_tier(subscription)
        fields = subscription_fields(subscription, tier)

    try:
        store.update_account(user_id, fields)
    except Exception as e:
        raise handle_supabase_error(e, "Failed to apply subscription")

    logger.info(
        f"Admin {current_user.id} synced subscription for user {user_id}: "
        f"tier={tier.value}, status={fields['subscription_status']}"
    )
    return SyncResult(user_id=user_id, applied=True, tier=tier, status=fields["subscription_status"])
