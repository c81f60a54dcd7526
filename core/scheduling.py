"""
Booking conflict detection.

Bookings occupy half-open intervals [start, end). Two intervals overlap
exactly when each starts before the other ends; jobs that merely touch
(one ends at 11:00, the next starts at 11:00) do not conflict.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable
from uuid import UUID


class BookingStatus(str, Enum):
    """Booking lifecycle status."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


@dataclass(frozen=True)
class Interval:
    """A booked time slot. Invariant: end > start."""

    start: datetime
    end: datetime
    id: UUID | None = None
    status: BookingStatus = BookingStatus.SCHEDULED

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError("End time must be after start time")

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end


def find_conflict(
    existing: Iterable[Interval],
    candidate: Interval,
    exclude_id: UUID | None = None,
) -> Interval | None:
    """
    First existing interval that blocks the candidate, or None.

    Args:
        existing: The owner's bookings (any status; cancelled ones are skipped)
        candidate: Proposed slot
        exclude_id: Booking being rescheduled, ignored so it can't conflict with itself
    """
    for interval in existing:
        if interval.status == BookingStatus.CANCELLED:
            continue
        if exclude_id is not None and interval.id == exclude_id:
            continue
        if interval.overlaps(candidate):
            return interval
    return None


def has_conflict(
    existing: Iterable[Interval],
    candidate: Interval,
    exclude_id: UUID | None = None,
) -> bool:
    """Whether the candidate overlaps any non-cancelled existing interval."""
    return find_conflict(existing, candidate, exclude_id) is not None
