"""Booking (scheduled job) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, Field, model_validator

from core.scheduling import BookingStatus, Interval


class BookingPriority(str, Enum):
    """How urgent the job is."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class BookingCreate(BaseModel):
    """Data required to create a booking."""

    customer_id: UUID
    title: str = Field(..., min_length=3, max_length=255)
    description: str | None = Field(None, max_length=10000)
    job_type: str | None = Field(None, max_length=100)
    scheduled_start: AwareDatetime
    scheduled_end: AwareDatetime
    all_day: bool = False
    address: str | None = Field(None, max_length=500)
    suburb: str | None = Field(None, max_length=100)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=50)
    postcode: str | None = Field(None, max_length=10)
    estimated_cost_cents: int | None = Field(None, gt=0)
    materials_needed: str | None = Field(None, max_length=5000)
    internal_notes: str | None = Field(None, max_length=10000)
    customer_notes: str | None = Field(None, max_length=10000)
    priority: BookingPriority = BookingPriority.NORMAL

    @model_validator(mode="after")
    def end_after_start(self) -> "BookingCreate":
        if self.scheduled_end <= self.scheduled_start:
            raise ValueError("End time must be after start time")
        return self


class BookingUpdate(BaseModel):
    """
    Data that can be updated on a booking. All fields optional.

    Start/end are validated against each other only after merging with the
    stored booking, in BookingService.update.
    """

    customer_id: UUID | None = None
    title: str | None = Field(None, min_length=3, max_length=255)
    description: str | None = Field(None, max_length=10000)
    job_type: str | None = Field(None, max_length=100)
    scheduled_start: AwareDatetime | None = None
    scheduled_end: AwareDatetime | None = None
    all_day: bool | None = None
    status: BookingStatus | None = None
    address: str | None = Field(None, max_length=500)
    suburb: str | None = Field(None, max_length=100)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=50)
    postcode: str | None = Field(None, max_length=10)
    estimated_cost_cents: int | None = Field(None, gt=0)
    actual_cost_cents: int | None = Field(None, gt=0)
    materials_needed: str | None = Field(None, max_length=5000)
    internal_notes: str | None = Field(None, max_length=10000)
    customer_notes: str | None = Field(None, max_length=10000)
    priority: BookingPriority | None = None
    deposit_cents: int | None = Field(None, gt=0)
    deposit_paid: bool | None = None
    cancellation_reason: str | None = Field(None, max_length=1000)


class Booking(BaseModel):
    """Full booking entity as stored."""

    id: UUID
    user_id: UUID
    customer_id: UUID
    title: str
    description: str | None
    job_type: str | None
    scheduled_start: AwareDatetime
    scheduled_end: AwareDatetime
    all_day: bool
    address: str | None
    suburb: str | None
    city: str | None
    state: str | None
    postcode: str | None
    estimated_cost_cents: int | None
    actual_cost_cents: int | None
    materials_needed: str | None
    internal_notes: str | None
    customer_notes: str | None
    priority: BookingPriority
    status: BookingStatus
    actual_start: datetime | None = None
    actual_end: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    deposit_cents: int | None = None
    deposit_paid: bool = False
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @property
    def interval(self) -> Interval:
        """This booking as an interval for conflict checks."""
        return Interval(
            start=self.scheduled_start,
            end=self.scheduled_end,
            id=self.id,
            status=self.status,
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status == BookingStatus.CANCELLED
