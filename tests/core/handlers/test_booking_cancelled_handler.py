"""Tests for booking cancelled handler.

On BookingCancelled: cancel the booking's pending reminders.
"""

from unittest.mock import MagicMock

from core.events import BookingCancelled
from core.handlers.booking_cancelled_handler import handle_booking_cancelled
from core.models import Booking
from core.services.reminder_service import ReminderService


class TestBookingCancelledHandler:

    def test_cancels_pending_reminders(self, make_booking_row):
        reminder_service = MagicMock(spec=ReminderService)
        reminder_service.cancel_pending_for_booking.return_value = 1
        booking = Booking.model_validate(make_booking_row(status="cancelled"))

        handle_booking_cancelled(reminder_service)(BookingCancelled.create(booking=booking))

        reminder_service.cancel_pending_for_booking.assert_called_once_with(booking.id)

    def test_nothing_pending(self, make_booking_row):
        reminder_service = MagicMock(spec=ReminderService)
        reminder_service.cancel_pending_for_booking.return_value = 0
        booking = Booking.model_validate(make_booking_row(status="cancelled"))

        handle_booking_cancelled(reminder_service)(BookingCancelled.create(booking=booking))

        reminder_service.schedule_for_booking.assert_not_called()
