from enum import Enum


class BaseStrEnum(str, Enum):
    """
    Base enum that serializes cleanly to a string
    and provides a .list() method for UI dropdowns.
    """

    def __str__(self):
        return str(self.value)

    @classmethod
    def list(cls):
        return [item.value for item in cls]


# -----------------------------------------------------
# USER ROLE
# -----------------------------------------------------
class UserRole(BaseStrEnum):
    """Platform roles carried in Supabase user metadata."""

    athlete = "athlete"
    coach = "coach"
    assistant_coach = "assistant_coach"
    admin = "admin"


# -----------------------------------------------------
# ATHLETE SUBSCRIPTION TIER
# -----------------------------------------------------
class SubscriptionTier(BaseStrEnum):
    """Athlete subscription tier; drives the access grant."""

    none = "none"
    free = "free"
    basic = "basic"
    elite = "elite"


# -----------------------------------------------------
# SUBSCRIPTION STATUS
# -----------------------------------------------------
class SubscriptionStatus(BaseStrEnum):
    """Stripe subscription status."""

    active = "active"
    canceled = "canceled"
    past_due = "past_due"
    unpaid = "unpaid"
    trialing = "trialing"
    incomplete = "incomplete"
    incomplete_expired = "incomplete_expired"
    paused = "paused"


ACTIVE_STATUSES = (SubscriptionStatus.active.value, SubscriptionStatus.trialing.value)
