"""
Subscription service: the tradie's own TradeFlow plan, billed through Stripe.

Plan changes go to Stripe first; the account row follows from the
customer.subscription.* and invoice.* webhooks via apply_event, so
Stripe stays the source of truth for status and period end.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from auth.database import AuthDatabase
from auth.types import User
from clients.stripe_client import StripeClient
from core.audit import AuditLogger, AuditAction
from core.models import BillingPeriod, SubscriptionStatus, SubscriptionTier
from utils.user_context import get_current_user_id

logger = logging.getLogger(__name__)

SUBSCRIPTION_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
})


def has_feature_access(user_tier: SubscriptionTier, required_tier: SubscriptionTier) -> bool:
    """Higher tiers include everything in the lower ones."""
    return user_tier.rank >= required_tier.rank


def _from_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class SubscriptionService:
    """
    Plan changes and Stripe subscription state.

    price_ids maps "<tier>_<period>" (e.g. "starter_monthly") to the Stripe
    price id, as returned by clients.vault_client.get_stripe_price_ids().
    """

    def __init__(
        self,
        accounts: AuthDatabase,
        stripe: StripeClient,
        price_ids: Dict[str, str],
        audit: AuditLogger,
    ):
        self.accounts = accounts
        self.stripe = stripe
        self.price_ids = price_ids
        self.audit = audit

    def price_id_for(self, tier: SubscriptionTier, period: BillingPeriod) -> str:
        key = f"{tier.value}_{period.value}"
        if key not in self.price_ids:
            raise ValueError(f"No price configured for plan {key}")
        return self.price_ids[key]

    def tier_for_price(self, price_id: str) -> SubscriptionTier | None:
        for key, value in self.price_ids.items():
            if value == price_id:
                return SubscriptionTier(key.split("_", 1)[0])
        return None

    def _current_account(self) -> User:
        user_id = get_current_user_id()
        user = self.accounts.get_user_by_id(user_id)
        if user is None:
            raise ValueError(f"Account {user_id} not found")
        return user

    def _log(self, user: User, changes: dict[str, Any]) -> None:
        self.audit.log_change(
            entity_type="subscription",
            entity_id=user.id,
            action=AuditAction.UPDATE,
            changes=changes,
            user_id=user.id,
        )

    def change_plan(self, tier: SubscriptionTier, billing_period: BillingPeriod) -> User:
        """
        Move the current account onto a plan.

        Creates the Stripe customer on first use. With no subscription yet
        one is created, otherwise its price is swapped (prorated). Status
        is left to the webhooks.

        Raises:
            ValueError: Account not found, or plan has no configured price
            PaymentGatewayError: Stripe rejected the request
        """
        user = self._current_account()
        price_id = self.price_id_for(tier, billing_period)

        customer_id = user.stripe_customer_id
        if customer_id is None:
            customer = self.stripe.create_customer(
                email=user.email,
                name=user.business_name,
                phone=user.phone,
                metadata={"user_id": str(user.id)},
            )
            customer_id = customer["id"]
            logger.info(f"Created Stripe customer for account {user.id}")

        if user.stripe_subscription_id:
            subscription = self.stripe.change_subscription_price(user.stripe_subscription_id, price_id)
        else:
            subscription = self.stripe.create_subscription(
                customer_id=customer_id,
                price_id=price_id,
                metadata={"user_id": str(user.id)},
            )

        updated = self.accounts.update_subscription(
            user.id,
            subscription_tier=tier,
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription["id"],
        )

        self._log(user, {"subscription_tier": {"old": user.subscription_tier.value, "new": tier.value}})

        return updated or user

    def cancel(self, immediately: bool = False) -> User:
        """
        Cancel the current account's subscription, at period end unless immediately.

        Raises:
            ValueError: No active subscription
            PaymentGatewayError: Stripe rejected the request
        """
        user = self._current_account()
        if not user.stripe_subscription_id:
            raise ValueError("Account has no subscription to cancel")

        subscription = self.stripe.cancel_subscription(user.stripe_subscription_id, immediately=immediately)

        fields: dict[str, Any] = {}
        if immediately:
            fields["subscription_status"] = SubscriptionStatus.CANCELLED
        period_end = _from_timestamp(subscription.get("current_period_end"))
        if period_end is not None:
            fields["subscription_ends_at"] = period_end

        updated = self.accounts.update_subscription(user.id, **fields) if fields else user

        self._log(user, {"cancelled": {"immediately": immediately}})

        return updated or user

    def apply_event(self, event: Dict[str, Any]) -> User | None:
        """
        Reflect a Stripe subscription or invoice event on the account.

        Returns the updated account, or None when the Stripe customer is
        unknown or the event type isn't a subscription event.
        """
        event_type = event.get("type")
        obj = event.get("data", {}).get("object", {})

        if event_type not in SUBSCRIPTION_EVENTS:
            logger.warning(f"Not a subscription event: {event_type}")
            return None

        customer_id = obj.get("customer")
        user = self.accounts.get_user_by_stripe_customer(customer_id) if customer_id else None
        if user is None:
            logger.warning(f"{event_type} for unknown Stripe customer {customer_id}")
            return None

        fields: dict[str, Any] = {}

        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            fields["stripe_subscription_id"] = obj.get("id")
            fields["subscription_status"] = (
                SubscriptionStatus.ACTIVE if obj.get("status") == "active"
                else SubscriptionStatus.PAST_DUE
            )
            period_end = _from_timestamp(obj.get("current_period_end"))
            if period_end is not None:
                fields["subscription_ends_at"] = period_end

            items = obj.get("items", {}).get("data", [])
            if items:
                tier = self.tier_for_price(items[0].get("price", {}).get("id"))
                if tier is not None:
                    fields["subscription_tier"] = tier

        elif event_type == "customer.subscription.deleted":
            fields["subscription_status"] = SubscriptionStatus.CANCELLED
            ended_at = _from_timestamp(obj.get("ended_at"))
            if ended_at is not None:
                fields["subscription_ends_at"] = ended_at

        elif event_type == "invoice.payment_succeeded":
            fields["subscription_status"] = SubscriptionStatus.ACTIVE

        elif event_type == "invoice.payment_failed":
            fields["subscription_status"] = SubscriptionStatus.PAST_DUE

        updated = self.accounts.update_subscription(user.id, **fields)

        self._log(user, {
            "event": event_type,
            "subscription_status": {
                "old": user.subscription_status.value,
                "new": fields["subscription_status"].value,
            },
        })

        logger.info(f"Applied {event_type} to account {user.id}")
        return updated

    def has_feature_access(self, required_tier: SubscriptionTier) -> bool:
        """Whether the current account's tier covers required_tier."""
        return has_feature_access(self._current_account().subscription_tier, required_tier)
