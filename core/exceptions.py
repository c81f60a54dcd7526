"""Typed domain exceptions.

Both subclass ValueError so callers that only care about "bad input" can
keep catching ValueError; the API layer maps the specific types to their
own status codes.
"""

from uuid import UUID


class SchedulingConflictError(ValueError):
    """Proposed booking time overlaps an existing, non-cancelled booking."""

    def __init__(self, conflicting_id: UUID | None = None):
        self.conflicting_id = conflicting_id
        message = "Scheduling conflict: booking overlaps an existing booking. Please choose a different time."
        if conflicting_id is not None:
            message = f"{message} (conflicts with booking {conflicting_id})"
        super().__init__(message)


class QuoteTotalsError(ValueError):
    """Quote inputs cannot produce valid totals (e.g. discount exceeds line items)."""
