"""
Booking service: scheduling jobs without double-booking.

Every write that can move a booking in time runs in one transaction that
first takes the account's advisory lock, reads the overlapping bookings,
runs the conflict check and only then writes. The bookings table also
carries an exclusion constraint; if it fires anyway the violation is
reported as a SchedulingConflictError.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2 import errors as pg_errors

from clients.postgres_client import PostgresClient, Transaction
from core.audit import AuditLogger, AuditAction, compute_changes
from core.event_bus import EventBus
from core.events import BookingCancelled, BookingCreated, BookingRescheduled
from core.exceptions import SchedulingConflictError
from core.models import Booking, BookingCreate, BookingStatus, BookingUpdate, Customer
from core.scheduling import Interval, find_conflict
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "customer_id", "title", "description", "job_type",
    "scheduled_start", "scheduled_end", "all_day", "status",
    "address", "suburb", "city", "state", "postcode",
    "estimated_cost_cents", "actual_cost_cents", "materials_needed",
    "internal_notes", "customer_notes", "priority",
    "deposit_cents", "deposit_paid", "cancellation_reason",
}

_ADDRESS_FIELDS = ("address", "suburb", "city", "state", "postcode")


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _as_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class BookingService:
    """Service for booking operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger, event_bus: EventBus):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus

    # -------------------------------------------------------------------------
    # Conflict detection
    # -------------------------------------------------------------------------

    def _check_conflict(
        self,
        tx: Transaction,
        candidate: Interval,
        exclude_id: UUID | None = None,
    ) -> None:
        """
        Raise if the candidate overlaps another live booking of this account.

        The SQL only narrows the rows fetched; find_conflict makes the call.

        Raises:
            SchedulingConflictError: Names the first blocking booking
        """
        rows = tx.execute(
            """
            SELECT id, scheduled_start, scheduled_end, status
            FROM bookings
            WHERE deleted_at IS NULL
              AND status <> %s
              AND scheduled_start < %s
              AND scheduled_end > %s
            """,
            (BookingStatus.CANCELLED.value, candidate.end, candidate.start)
        )

        existing = [
            Interval(
                start=row["scheduled_start"],
                end=row["scheduled_end"],
                id=_as_uuid(row["id"]),
                status=BookingStatus(row["status"]),
            )
            for row in rows
        ]

        conflict = find_conflict(existing, candidate, exclude_id=exclude_id)
        if conflict is not None:
            logger.info(f"Booking conflict with {conflict.id} for {candidate.start} - {candidate.end}")
            raise SchedulingConflictError(conflict.id)

    def _get_customer(self, customer_id: UUID) -> Customer:
        row = self.postgres.execute_single(
            "SELECT * FROM customers WHERE id = %s AND deleted_at IS NULL",
            (customer_id,)
        )
        if row is None:
            raise ValueError(f"Customer {customer_id} not found")
        return Customer.model_validate(row)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, data: BookingCreate) -> Booking:
        """
        Book a job for a customer.

        Address fields left empty are copied from the customer.

        Raises:
            ValueError: Customer not found
            SchedulingConflictError: Slot overlaps another booking
        """
        user_id = get_current_user_id()
        customer = self._get_customer(data.customer_id)
        candidate = Interval(start=data.scheduled_start, end=data.scheduled_end)

        address = {
            field: getattr(data, field) or getattr(customer, field)
            for field in _ADDRESS_FIELDS
        }
        now = now_utc()

        try:
            with self.postgres.transaction() as tx:
                tx.lock_account(user_id)
                self._check_conflict(tx, candidate)
                row = tx.execute_returning(
                    """
                    INSERT INTO bookings (
                        id, user_id, customer_id, title, description, job_type,
                        scheduled_start, scheduled_end, all_day,
                        address, suburb, city, state, postcode,
                        estimated_cost_cents, materials_needed,
                        internal_notes, customer_notes, priority, status,
                        deposit_paid, created_at, updated_at
                    ) VALUES (
                        %s, %s, %s, %s, %s, %s,
                        %s, %s, %s,
                        %s, %s, %s, %s, %s,
                        %s, %s,
                        %s, %s, %s, %s,
                        %s, %s, %s
                    )
                    RETURNING *
                    """,
                    (
                        uuid4(), user_id, data.customer_id, data.title, data.description, data.job_type,
                        data.scheduled_start, data.scheduled_end, data.all_day,
                        address["address"], address["suburb"], address["city"],
                        address["state"], address["postcode"],
                        data.estimated_cost_cents, data.materials_needed,
                        data.internal_notes, data.customer_notes,
                        data.priority.value, BookingStatus.SCHEDULED.value,
                        False, now, now
                    )
                )[0]
        except pg_errors.ExclusionViolation:
            logger.warning("Booking exclusion constraint rejected an insert")
            raise SchedulingConflictError()

        booking = Booking.model_validate(row)

        self.audit.log_change(
            entity_type="booking",
            entity_id=booking.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        self.event_bus.publish(BookingCreated.create(booking=booking, customer=customer))

        return booking

    def get_by_id(self, booking_id: UUID) -> Booking | None:
        row = self.postgres.execute_single(
            "SELECT * FROM bookings WHERE id = %s AND deleted_at IS NULL",
            (booking_id,)
        )
        if row is None:
            return None
        return Booking.model_validate(row)

    def update(self, booking_id: UUID, data: BookingUpdate) -> Booking:
        """
        Update a booking.

        Moving it (or re-activating a cancelled one) re-runs the conflict
        check with the booking itself excluded. Status changes stamp:
        in_progress -> actual_start, completed -> completed_at and
        actual_end, cancelled -> cancelled_at.

        Raises:
            ValueError: Booking/customer not found, or end not after start
            SchedulingConflictError: New slot overlaps another booking
        """
        current = self.get_by_id(booking_id)
        if current is None:
            raise ValueError(f"Booking {booking_id} not found")

        updates = data.model_dump(exclude_none=True)
        for field in updates:
            if field not in _UPDATABLE_COLUMNS:
                logger.warning(
                    f"Attempted to update unknown field '{field}' on booking {booking_id}"
                )
        updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not updates:
            return current

        if "customer_id" in updates and updates["customer_id"] != current.customer_id:
            self._get_customer(updates["customer_id"])

        new_start: datetime = updates.get("scheduled_start", current.scheduled_start)
        new_end: datetime = updates.get("scheduled_end", current.scheduled_end)
        new_status: BookingStatus = updates.get("status", current.status)

        times_changed = new_start != current.scheduled_start or new_end != current.scheduled_end
        if times_changed and new_end <= new_start:
            raise ValueError("End time must be after start time")

        reactivated = current.is_cancelled and new_status != BookingStatus.CANCELLED
        needs_check = new_status != BookingStatus.CANCELLED and (times_changed or reactivated)

        now = now_utc()
        if new_status != current.status:
            if new_status == BookingStatus.IN_PROGRESS and current.actual_start is None:
                updates["actual_start"] = now
            elif new_status == BookingStatus.COMPLETED:
                updates["completed_at"] = now
                updates["actual_end"] = now
            elif new_status == BookingStatus.CANCELLED:
                updates["cancelled_at"] = now

        set_parts = [f"{field} = %s" for field in updates] + ["updated_at = %s"]
        params = [_db_value(v) for v in updates.values()] + [now, booking_id]
        query = f"""
            UPDATE bookings
            SET {', '.join(set_parts)}
            WHERE id = %s AND deleted_at IS NULL
            RETURNING *
        """

        if needs_check:
            try:
                with self.postgres.transaction() as tx:
                    tx.lock_account(current.user_id)
                    self._check_conflict(
                        tx, Interval(start=new_start, end=new_end), exclude_id=booking_id
                    )
                    row = tx.execute_returning(query, tuple(params))[0]
            except pg_errors.ExclusionViolation:
                logger.warning(f"Booking exclusion constraint rejected update of {booking_id}")
                raise SchedulingConflictError()
        else:
            row = self.postgres.execute_returning(query, tuple(params))[0]

        updated = Booking.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="booking",
                entity_id=booking_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        if updated.is_cancelled and not current.is_cancelled:
            self.event_bus.publish(BookingCancelled.create(booking=updated))
        elif not updated.is_cancelled and updated.scheduled_start != current.scheduled_start:
            self.event_bus.publish(
                BookingRescheduled.create(booking=updated, previous_start=current.scheduled_start)
            )

        return updated

    def cancel(self, booking_id: UUID, reason: str | None = None) -> Booking:
        """
        Cancel a booking. Pending reminders are cancelled by the event handler.

        Raises:
            ValueError: Not found, or already cancelled
        """
        current = self.get_by_id(booking_id)
        if current is None:
            raise ValueError(f"Booking {booking_id} not found")
        if current.is_cancelled:
            raise ValueError(f"Booking {booking_id} is already cancelled")

        return self.update(
            booking_id,
            BookingUpdate(status=BookingStatus.CANCELLED, cancellation_reason=reason),
        )

    def mark_deposit_paid(self, booking_id: UUID) -> Booking:
        """
        Record that the deposit for a booking arrived.

        Raises:
            ValueError: If booking not found
        """
        current = self.get_by_id(booking_id)
        if current is None:
            raise ValueError(f"Booking {booking_id} not found")
        if current.deposit_paid:
            return current

        row = self.postgres.execute_returning(
            """
            UPDATE bookings
            SET deposit_paid = true, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (now_utc(), booking_id)
        )[0]

        updated = Booking.model_validate(row)

        self.audit.log_change(
            entity_type="booking",
            entity_id=booking_id,
            action=AuditAction.UPDATE,
            changes={"deposit_paid": {"old": False, "new": True}}
        )

        return updated

    def list_calendar(self, start: datetime, end: datetime) -> list[Booking]:
        """
        Every booking overlapping [start, end), cancelled ones included.

        Raises:
            ValueError: If either bound lacks a UTC offset, or end is not after start
        """
        if start.tzinfo is None or end.tzinfo is None:
            raise ValueError("Calendar range bounds must include a UTC offset")
        if end <= start:
            raise ValueError("End of calendar range must be after start")

        rows = self.postgres.execute(
            """
            SELECT * FROM bookings
            WHERE deleted_at IS NULL
              AND scheduled_start < %s
              AND scheduled_end > %s
            ORDER BY scheduled_start ASC
            """,
            (end, start)
        )
        return [Booking.model_validate(row) for row in rows]

    def list(
        self,
        status: BookingStatus | None = None,
        customer_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Booking], int]:
        """
        One page of bookings ordered by start time.

        start/end filter on scheduled_start within [start, end].

        Returns:
            (bookings on this page, total matching)
        """
        conditions = ["deleted_at IS NULL"]
        params: list[Any] = []

        if status is not None:
            conditions.append("status = %s")
            params.append(_db_value(status))
        if customer_id is not None:
            conditions.append("customer_id = %s")
            params.append(customer_id)
        if start is not None:
            conditions.append("scheduled_start >= %s")
            params.append(start)
        if end is not None:
            conditions.append("scheduled_start <= %s")
            params.append(end)

        where = " AND ".join(conditions)

        rows = self.postgres.execute(
            f"""
            SELECT * FROM bookings
            WHERE {where}
            ORDER BY scheduled_start ASC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, (page - 1) * limit])
        )
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM bookings WHERE {where}",
            tuple(params)
        )

        return [Booking.model_validate(row) for row in rows], int(total or 0)
