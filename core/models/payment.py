"""Payment domain models. Amounts in cents."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentType(str, Enum):
    """What the money is for."""

    DEPOSIT = "deposit"
    FULL = "full"
    BALANCE = "balance"


class PaymentIntentCreate(BaseModel):
    """Request to start a card payment."""

    amount_cents: int = Field(..., gt=0)
    booking_id: UUID | None = None
    quote_id: UUID | None = None
    description: str | None = Field(None, max_length=500)
    payment_type: PaymentType = PaymentType.FULL


class Payment(BaseModel):
    """Full payment entity as stored."""

    id: UUID
    user_id: UUID
    booking_id: UUID | None
    quote_id: UUID | None
    stripe_payment_intent_id: str
    stripe_charge_id: str | None = None
    amount_cents: int
    currency: str
    status: PaymentStatus
    payment_type: PaymentType
    description: str | None
    paid_at: datetime | None = None
    failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaymentIntentResult(BaseModel):
    """What the browser needs to confirm the payment with Stripe.js."""

    client_secret: str
    payment_intent_id: str
    payment: Payment
