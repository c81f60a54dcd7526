"""
Reminder service: booking reminders scheduled ahead of each job.

A reminder row is written when a booking is created, cancelled when the
booking is, and sent by process_due from the reminder worker.
"""

import logging
from datetime import timedelta
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction
from core.config import BusinessConfig
from core.models import Booking, Customer, Reminder, ReminderStatus, ReminderType
from core.notifications import Notifier
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def reminder_type_for(customer: Customer) -> ReminderType | None:
    """Channels the customer can be reached on, or None for neither."""
    if customer.email and customer.phone:
        return ReminderType.BOTH
    if customer.email:
        return ReminderType.EMAIL
    if customer.phone:
        return ReminderType.SMS
    return None


class ReminderService:
    """Service for booking reminder operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, config: BusinessConfig):
        self.postgres = postgres
        self.audit = audit
        self.config = config

    def schedule_for_booking(self, booking: Booking, customer: Customer) -> Reminder | None:
        """
        Schedule the reminder for a booking, lead hours before it starts.

        Returns None (nothing written) when that moment has already passed
        or the customer has no email or phone.
        """
        send_at = booking.scheduled_start - timedelta(hours=self.config.reminder_lead_hours)
        if send_at <= now_utc():
            logger.info(f"Booking {booking.id} starts too soon for a reminder")
            return None

        reminder_type = reminder_type_for(customer)
        if reminder_type is None:
            logger.info(f"Customer {customer.id} has no contact details, no reminder")
            return None

        row = self.postgres.execute_returning(
            """
            INSERT INTO reminders (
                id, user_id, booking_id, reminder_type,
                scheduled_for, status, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), get_current_user_id(), booking.id, reminder_type.value,
                send_at, ReminderStatus.SCHEDULED.value, now_utc()
            )
        )[0]

        reminder = Reminder.model_validate(row)

        self.audit.log_change(
            entity_type="reminder",
            entity_id=reminder.id,
            action=AuditAction.CREATE,
            changes={"created": reminder.model_dump(mode="json")}
        )

        return reminder

    def cancel_pending_for_booking(self, booking_id: UUID) -> int:
        """Cancel every scheduled reminder of a booking. Returns how many."""
        rows = self.postgres.execute_returning(
            """
            UPDATE reminders
            SET status = %s
            WHERE booking_id = %s AND status = %s
            RETURNING id
            """,
            (ReminderStatus.CANCELLED.value, booking_id, ReminderStatus.SCHEDULED.value)
        )

        for row in rows:
            self.audit.log_change(
                entity_type="reminder",
                entity_id=row["id"],
                action=AuditAction.UPDATE,
                changes={"status": {
                    "old": ReminderStatus.SCHEDULED.value,
                    "new": ReminderStatus.CANCELLED.value,
                }}
            )

        return len(rows)

    def reschedule_for_booking(self, booking: Booking) -> Reminder | None:
        """Replace a moved booking's pending reminder with one for the new time."""
        self.cancel_pending_for_booking(booking.id)

        row = self.postgres.execute_single(
            "SELECT * FROM customers WHERE id = %s AND deleted_at IS NULL",
            (booking.customer_id,)
        )
        if row is None:
            return None
        return self.schedule_for_booking(booking, Customer.model_validate(row))

    def get_by_id(self, reminder_id: UUID) -> Reminder | None:
        row = self.postgres.execute_single(
            "SELECT * FROM reminders WHERE id = %s",
            (reminder_id,)
        )
        if row is None:
            return None
        return Reminder.model_validate(row)

    def list_for_booking(self, booking_id: UUID) -> list[Reminder]:
        rows = self.postgres.execute(
            "SELECT * FROM reminders WHERE booking_id = %s ORDER BY scheduled_for ASC",
            (booking_id,)
        )
        return [Reminder.model_validate(row) for row in rows]

    def list_due(self, limit: int = 100) -> list[Reminder]:
        """Scheduled reminders whose time has come, oldest first."""
        rows = self.postgres.execute(
            """
            SELECT * FROM reminders
            WHERE status = %s AND scheduled_for <= %s
            ORDER BY scheduled_for ASC
            LIMIT %s
            """,
            (ReminderStatus.SCHEDULED.value, now_utc(), limit)
        )
        return [Reminder.model_validate(row) for row in rows]

    def _set_status(
        self,
        reminder_id: UUID,
        status: ReminderStatus,
        reason: str | None = None,
    ) -> Reminder:
        current = self.get_by_id(reminder_id)
        if current is None:
            raise ValueError(f"Reminder {reminder_id} not found")

        sent_at = now_utc() if status == ReminderStatus.SENT else None

        row = self.postgres.execute_returning(
            """
            UPDATE reminders
            SET status = %s, sent_at = COALESCE(%s, sent_at), failure_reason = %s
            WHERE id = %s
            RETURNING *
            """,
            (status.value, sent_at, reason, reminder_id)
        )[0]

        changes = {"status": {"old": current.status.value, "new": status.value}}
        if reason:
            changes["reason"] = reason

        self.audit.log_change(
            entity_type="reminder",
            entity_id=reminder_id,
            action=AuditAction.UPDATE,
            changes=changes
        )

        return Reminder.model_validate(row)

    def mark_sent(self, reminder_id: UUID) -> Reminder:
        return self._set_status(reminder_id, ReminderStatus.SENT)

    def mark_failed(self, reminder_id: UUID, reason: str) -> Reminder:
        """Gateway error: attempted but not delivered on any channel."""
        return self._set_status(reminder_id, ReminderStatus.FAILED, reason)

    def mark_skipped(self, reminder_id: UUID, reason: str) -> Reminder:
        """Precondition failed: booking gone or cancelled, customer unreachable."""
        return self._set_status(reminder_id, ReminderStatus.SKIPPED, reason)

    def process_due(
        self,
        notifier: Notifier,
        business_name: str,
        business_phone: str | None = None,
        business_email: str | None = None,
    ) -> dict[str, int]:
        """
        Send every due reminder of the current account.

        Returns:
            {"sent": N, "failed": N, "skipped": N}
        """
        results = {"sent": 0, "failed": 0, "skipped": 0}

        for reminder in self.list_due(self.config.reminder_batch_size):
            booking_row = self.postgres.execute_single(
                "SELECT * FROM bookings WHERE id = %s AND deleted_at IS NULL",
                (reminder.booking_id,)
            )
            if booking_row is None:
                self.mark_skipped(reminder.id, "Booking no longer exists")
                results["skipped"] += 1
                continue

            booking = Booking.model_validate(booking_row)
            if booking.is_cancelled:
                self.mark_skipped(reminder.id, "Booking was cancelled")
                results["skipped"] += 1
                continue

            customer_row = self.postgres.execute_single(
                "SELECT * FROM customers WHERE id = %s AND deleted_at IS NULL",
                (booking.customer_id,)
            )
            if customer_row is None:
                self.mark_skipped(reminder.id, "Customer no longer exists")
                results["skipped"] += 1
                continue

            delivery = notifier.send_booking_reminder(
                booking,
                Customer.model_validate(customer_row),
                business_name=business_name,
                business_phone=business_phone,
                channels=reminder.reminder_type,
                business_email=business_email,
            )

            if delivery.delivered:
                self.mark_sent(reminder.id)
                results["sent"] += 1
            elif delivery.attempted:
                self.mark_failed(reminder.id, "; ".join(delivery.errors))
                results["failed"] += 1
            else:
                self.mark_skipped(reminder.id, "Customer has no contact details for this reminder")
                results["skipped"] += 1

        return results
