"""
Handler for BookingCancelled events.

On booking cancellation, cancels the booking's pending reminders.
"""

import logging
from typing import Callable

from core.events import BookingCancelled

logger = logging.getLogger(__name__)


def handle_booking_cancelled(reminder_service) -> Callable:
    """
    Factory that returns a BookingCancelled handler.

    Args:
        reminder_service: ReminderService instance

    Returns:
        Handler callable that cancels pending reminders for the booking
    """

    def handler(event: BookingCancelled):
        cancelled = reminder_service.cancel_pending_for_booking(event.booking.id)
        if cancelled:
            logger.info(f"Cancelled {cancelled} reminder(s) for booking {event.booking.id}")

    return handler
