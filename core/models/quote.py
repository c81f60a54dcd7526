"""Quote domain models.

All amounts are stored in cents (integer). Tax and deposit rates are
percentages as Decimal (10 = 10%). Totals are always derived from line
items, discount and rates by core.pricing.compute_totals.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.pricing import LineItem, QuoteTotals


class QuoteStatus(str, Enum):
    """Quote lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


class QuoteCreate(BaseModel):
    """Data required to create a quote."""

    customer_id: UUID
    booking_id: UUID | None = None
    title: str = Field(..., min_length=3, max_length=255)
    description: str | None = Field(None, max_length=10000)
    line_items: list[LineItem] = Field(..., min_length=1)
    discount_cents: int = Field(0, ge=0)
    deposit_percent: Decimal | None = Field(None, ge=0, le=100)
    valid_until: datetime | None = None
    terms: str | None = Field(None, max_length=10000)
    notes: str | None = Field(None, max_length=10000)


class QuoteUpdate(BaseModel):
    """Data that can be updated on a quote. All fields optional."""

    customer_id: UUID | None = None
    booking_id: UUID | None = None
    title: str | None = Field(None, min_length=3, max_length=255)
    description: str | None = Field(None, max_length=10000)
    line_items: list[LineItem] | None = Field(None, min_length=1)
    discount_cents: int | None = Field(None, ge=0)
    deposit_percent: Decimal | None = Field(None, ge=0, le=100)
    valid_until: datetime | None = None
    terms: str | None = Field(None, max_length=10000)
    notes: str | None = Field(None, max_length=10000)
    status: QuoteStatus | None = None


class QuoteSendRequest(BaseModel):
    """Which channels to notify the customer on."""

    send_email: bool = True
    send_sms: bool = True


class Quote(BaseModel):
    """Full quote entity as stored."""

    id: UUID
    user_id: UUID
    customer_id: UUID
    booking_id: UUID | None
    quote_number: str
    title: str
    description: str | None
    line_items: list[LineItem]
    subtotal_cents: int
    discount_cents: int
    tax_rate_percent: Decimal
    tax_cents: int
    total_cents: int
    deposit_percent: Decimal | None
    deposit_cents: int | None
    status: QuoteStatus
    valid_until: datetime
    terms: str | None
    notes: str | None
    sent_at: datetime | None = None
    viewed_at: datetime | None = None
    accepted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def totals(self) -> QuoteTotals:
        """Stored totals as a QuoteTotals (no recomputation)."""
        return QuoteTotals(
            line_items_total_cents=self.subtotal_cents + self.discount_cents,
            discount_cents=self.discount_cents,
            subtotal_cents=self.subtotal_cents,
            tax_rate_percent=self.tax_rate_percent,
            tax_cents=self.tax_cents,
            total_cents=self.total_cents,
            deposit_percent=self.deposit_percent,
            deposit_cents=self.deposit_cents,
        )
