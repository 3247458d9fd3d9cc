# models/subscription.py

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field
from models.enums import SubscriptionTier


class VideoUsage(BaseModel):
    used: int = 0
    limit: int = Field(0, description="-1 means unlimited")
    remaining: int = Field(0, description="-1 means unlimited")


class FeatureFlags(BaseModel):
    has_ai_assistant: bool = False
    has_coach_feed: bool = False
    has_priority_queue: bool = False
    max_coaches: int = Field(1, description="-1 means unlimited")


class BillingPeriod(BaseModel):
    current_period_end: datetime
    cancel_at_period_end: bool = False


class SubscriptionSummary(BaseModel):
    """Athlete-facing view of subscription, usage and features."""
    tier: SubscriptionTier = SubscriptionTier.none
    status: str = "canceled"
    is_active: bool = False
    video_submissions: VideoUsage = VideoUsage()
    features: FeatureFlags = FeatureFlags()
    billing: Optional[BillingPeriod] = None


class CoachLimitResult(BaseModel):
    allowed: bool
    max_coaches: int
    error: Optional[str] = None
    upgrade_url: Optional[str] = None


class VideoLimitResult(BaseModel):
    allowed: bool
    used: int = 0
    limit: int = 0
    remaining: int = 0
    error: Optional[str] = None


class VerifySessionRequest(BaseModel):
    session_id: Optional[str] = Field(None, description="Stripe Checkout Session ID from the success redirect")


class VerifySessionResponse(BaseModel):
    success: bool = True
    verified: bool = False
    already_active: bool = False
    tier: Optional[SubscriptionTier] = None
    status: Optional[str] = None
    is_active: bool = False
    message: Optional[str] = None


class SyncResult(BaseModel):
    user_id: str
    applied: bool
    tier: Optional[SubscriptionTier] = None
    status: Optional[str] = None
    reason: Optional[str] = None
