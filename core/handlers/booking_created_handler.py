"""
Handler for BookingCreated events.

Schedules the customer's reminder ahead of the new booking.
"""

import logging
from typing import Callable

from core.events import BookingCreated

logger = logging.getLogger(__name__)


def handle_booking_created(reminder_service) -> Callable:
    """
    Factory that returns a BookingCreated handler.

    Args:
        reminder_service: ReminderService instance

    Returns:
        Handler callable that schedules the booking reminder
    """

    def handler(event: BookingCreated):
        reminder = reminder_service.schedule_for_booking(event.booking, event.customer)
        if reminder is not None:
            logger.info(f"Reminder {reminder.id} scheduled for {reminder.scheduled_for}")

    return handler
