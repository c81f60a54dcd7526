"""Handler for BookingRescheduled events: moves the reminder with the booking."""

import logging
from typing import Callable

from core.events import BookingRescheduled

logger = logging.getLogger(__name__)


def handle_booking_rescheduled(reminder_service) -> Callable:
    def handler(event: BookingRescheduled):
        reminder_service.reschedule_for_booking(event.booking)

    return handler
