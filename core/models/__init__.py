"""Core domain models."""

from core.models.customer import (
    Customer,
    CustomerCreate,
    CustomerUpdate,
    CustomerDetail,
    PreferredContact,
)
from core.models.booking import Booking, BookingCreate, BookingUpdate, BookingPriority
from core.models.quote import Quote, QuoteCreate, QuoteUpdate, QuoteSendRequest, QuoteStatus
from core.models.payment import (
    Payment,
    PaymentIntentCreate,
    PaymentIntentResult,
    PaymentStatus,
    PaymentType,
)
from core.models.reminder import Reminder, ReminderStatus, ReminderType
from core.models.subscription import (
    SubscriptionTier,
    SubscriptionStatus,
    BillingPeriod,
    PlanChange,
    SubscriptionCancel,
    PLAN_PRICES_CENTS,
)
from core.pricing import LineItem, QuoteTotals
from core.scheduling import BookingStatus

__all__ = [
    # Customer
    "Customer", "CustomerCreate", "CustomerUpdate", "CustomerDetail", "PreferredContact",
    # Booking
    "Booking", "BookingCreate", "BookingUpdate", "BookingPriority", "BookingStatus",
    # Quote
    "Quote", "QuoteCreate", "QuoteUpdate", "QuoteSendRequest", "QuoteStatus",
    "LineItem", "QuoteTotals",
    # Payment
    "Payment", "PaymentIntentCreate", "PaymentIntentResult", "PaymentStatus", "PaymentType",
    # Reminder
    "Reminder", "ReminderStatus", "ReminderType",
    # Subscription
    "SubscriptionTier", "SubscriptionStatus", "BillingPeriod", "PlanChange",
    "SubscriptionCancel", "PLAN_PRICES_CENTS",
]
