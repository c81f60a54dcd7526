"""Booking reminder domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class ReminderStatus(str, Enum):
    """Reminder delivery status."""

    SCHEDULED = "scheduled"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"  # Gateway error - attempted but failed
    SKIPPED = "skipped"  # Precondition failed - booking gone, no contact details


class ReminderType(str, Enum):
    """Channels a reminder goes out on."""

    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"

    @property
    def includes_email(self) -> bool:
        return self in (ReminderType.EMAIL, ReminderType.BOTH)

    @property
    def includes_sms(self) -> bool:
        return self in (ReminderType.SMS, ReminderType.BOTH)


class Reminder(BaseModel):
    """Full reminder entity as stored."""

    id: UUID
    user_id: UUID
    booking_id: UUID
    reminder_type: ReminderType
    scheduled_for: datetime
    status: ReminderStatus
    sent_at: datetime | None = None
    failure_reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
