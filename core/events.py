"""
Domain events.

Immutable records of something that already happened. Services publish
them after the database write and audit entry; handlers react (schedule a
reminder, mark a deposit paid) without the publisher knowing who listens.

Events carry the full domain object so handlers don't re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base class for all domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# BOOKING EVENTS
# =============================================================================


@dataclass(frozen=True)
class BookingCreated(DomainEvent):
    """A booking was created (status scheduled)."""
    booking: Any = None  # Booking
    customer: Any = None  # Customer, already loaded for address defaults

    @classmethod
    def create(cls, booking: Any, customer: Any) -> "BookingCreated":
        return cls(booking=booking, customer=customer)


@dataclass(frozen=True)
class BookingRescheduled(DomainEvent):
    """A booking's start or end moved."""
    booking: Any = None
    previous_start: datetime | None = None

    @classmethod
    def create(cls, booking: Any, previous_start: datetime) -> "BookingRescheduled":
        return cls(booking=booking, previous_start=previous_start)


@dataclass(frozen=True)
class BookingCancelled(DomainEvent):
    """A booking was cancelled."""
    booking: Any = None

    @classmethod
    def create(cls, booking: Any) -> "BookingCancelled":
        return cls(booking=booking)


# =============================================================================
# QUOTE EVENTS
# =============================================================================


@dataclass(frozen=True)
class QuoteSent(DomainEvent):
    """Quote was sent to the customer."""
    quote: Any = None
    email_sent: bool = False
    sms_sent: bool = False

    @classmethod
    def create(cls, quote: Any, email_sent: bool, sms_sent: bool) -> "QuoteSent":
        return cls(quote=quote, email_sent=email_sent, sms_sent=sms_sent)


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentSucceeded(DomainEvent):
    """Stripe confirmed a payment."""
    payment: Any = None

    @classmethod
    def create(cls, payment: Any) -> "PaymentSucceeded":
        return cls(payment=payment)


@dataclass(frozen=True)
class PaymentFailed(DomainEvent):
    """Stripe reported a failed payment attempt."""
    payment: Any = None

    @classmethod
    def create(cls, payment: Any) -> "PaymentFailed":
        return cls(payment=payment)
