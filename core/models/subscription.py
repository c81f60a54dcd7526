"""Subscription plan models and price table (AUD cents)."""

from enum import Enum

from pydantic import BaseModel


class SubscriptionTier(str, Enum):
    STARTER = "starter"
    PROFESSIONAL = "professional"
    PREMIUM = "premium"

    @property
    def rank(self) -> int:
        """Ordering used for feature gating; higher tiers include lower ones."""
        return _TIER_RANK[self]


_TIER_RANK = {
    SubscriptionTier.STARTER: 1,
    SubscriptionTier.PROFESSIONAL: 2,
    SubscriptionTier.PREMIUM: 3,
}


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


class BillingPeriod(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


# Yearly is ten months' price
PLAN_PRICES_CENTS: dict[tuple[SubscriptionTier, BillingPeriod], int] = {
    (SubscriptionTier.STARTER, BillingPeriod.MONTHLY): 2900,
    (SubscriptionTier.STARTER, BillingPeriod.YEARLY): 29000,
    (SubscriptionTier.PROFESSIONAL, BillingPeriod.MONTHLY): 5900,
    (SubscriptionTier.PROFESSIONAL, BillingPeriod.YEARLY): 59000,
    (SubscriptionTier.PREMIUM, BillingPeriod.MONTHLY): 9900,
    (SubscriptionTier.PREMIUM, BillingPeriod.YEARLY): 99000,
}


class PlanChange(BaseModel):
    """Request to move to a different plan."""

    tier: SubscriptionTier
    billing_period: BillingPeriod


class SubscriptionCancel(BaseModel):
    immediately: bool = False
