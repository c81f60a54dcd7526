"""
Quote service: priced quotes with GST, discounts and deposits.

Stored totals are always the output of compute_totals over the quote's
line items, discount and deposit percentage; no total is ever written
from request data directly.
"""

import logging
from datetime import timedelta
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.config import BusinessConfig
from core.event_bus import EventBus
from core.events import QuoteSent
from core.models import Customer, Quote, QuoteCreate, QuoteStatus, QuoteUpdate
from core.notifications import Notifier
from core.pricing import LineItem, compute_totals, generate_quote_number
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "customer_id", "booking_id", "title", "description", "line_items",
    "discount_cents", "deposit_percent", "valid_until", "terms", "notes", "status",
}

# Changing any of these recomputes every stored total
_PRICING_FIELDS = {"line_items", "discount_cents", "deposit_percent"}


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _line_items_json(line_items: list[LineItem]) -> Json:
    return Json([item.model_dump(mode="json") for item in line_items])


class QuoteService:
    """Service for quote operations."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        config: BusinessConfig,
        notifier: Notifier | None = None,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.config = config
        self.notifier = notifier

    def _get_customer(self, customer_id: UUID) -> Customer:
        row = self.postgres.execute_single(
            "SELECT * FROM customers WHERE id = %s AND deleted_at IS NULL",
            (customer_id,)
        )
        if row is None:
            raise ValueError(f"Customer {customer_id} not found")
        return Customer.model_validate(row)

    def _require_booking(self, booking_id: UUID) -> None:
        row = self.postgres.execute_single(
            "SELECT id FROM bookings WHERE id = %s AND deleted_at IS NULL",
            (booking_id,)
        )
        if row is None:
            raise ValueError(f"Booking {booking_id} not found")

    def create(self, data: QuoteCreate) -> Quote:
        """
        Create a draft quote.

        Raises:
            ValueError: Customer or booking not found
            QuoteTotalsError: Discount exceeds line items
        """
        user_id = get_current_user_id()
        self._get_customer(data.customer_id)
        if data.booking_id is not None:
            self._require_booking(data.booking_id)

        totals = compute_totals(
            data.line_items,
            discount_cents=data.discount_cents,
            tax_rate_percent=self.config.gst_rate_percent,
            deposit_percent=data.deposit_percent,
        )

        now = now_utc()
        valid_until = data.valid_until or now + timedelta(days=self.config.quote_validity_days)

        with self.postgres.transaction() as tx:
            # Numbering is per account and year; the lock keeps it gap-free
            tx.lock_account(user_id)
            count = tx.execute_single(
                """
                SELECT COUNT(*) AS count FROM quotes
                WHERE date_part('year', created_at) = %s
                """,
                (now.year,)
            )
            quote_number = generate_quote_number(int(count["count"]) + 1, now.year)

            row = tx.execute_returning(
                """
                INSERT INTO quotes (
                    id, user_id, customer_id, booking_id, quote_number,
                    title, description, line_items,
                    subtotal_cents, discount_cents, tax_rate_percent, tax_cents,
                    total_cents, deposit_percent, deposit_cents,
                    status, valid_until, terms, notes, created_at, updated_at
                ) VALUES (
                    %s, %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s, %s,
                    %s, %s, %s,
                    %s, %s, %s, %s, %s, %s
                )
                RETURNING *
                """,
                (
                    uuid4(), user_id, data.customer_id, data.booking_id, quote_number,
                    data.title, data.description, _line_items_json(data.line_items),
                    totals.subtotal_cents, totals.discount_cents, totals.tax_rate_percent,
                    totals.tax_cents, totals.total_cents, totals.deposit_percent,
                    totals.deposit_cents, QuoteStatus.DRAFT.value, valid_until,
                    data.terms, data.notes, now, now
                )
            )[0]

        quote = Quote.model_validate(row)

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote.id,
            action=AuditAction.CREATE,
            changes={"created": quote.model_dump(mode="json")}
        )

        return quote

    def get_by_id(self, quote_id: UUID) -> Quote | None:
        row = self.postgres.execute_single(
            "SELECT * FROM quotes WHERE id = %s AND deleted_at IS NULL",
            (quote_id,)
        )
        if row is None:
            return None
        return Quote.model_validate(row)

    def update(self, quote_id: UUID, data: QuoteUpdate) -> Quote:
        """
        Update a quote.

        When line items, discount or deposit percentage change, totals are
        recomputed from the merged inputs: whatever the request omits comes
        from the stored quote.

        Raises:
            ValueError: Quote, customer or booking not found
            QuoteTotalsError: Merged discount exceeds merged line items
        """
        current = self.get_by_id(quote_id)
        if current is None:
            raise ValueError(f"Quote {quote_id} not found")

        updates = data.model_dump(exclude_unset=True)
        for field in updates:
            if field not in _UPDATABLE_COLUMNS:
                logger.warning(
                    f"Attempted to update unknown field '{field}' on quote {quote_id}"
                )
        # deposit_percent may be cleared explicitly; everything else ignores None
        updates = {
            k: v for k, v in updates.items()
            if k in _UPDATABLE_COLUMNS and (v is not None or k == "deposit_percent")
        }
        if not updates:
            return current

        if "customer_id" in updates and updates["customer_id"] != current.customer_id:
            self._get_customer(updates["customer_id"])
        if updates.get("booking_id") and updates["booking_id"] != current.booking_id:
            self._require_booking(updates["booking_id"])

        columns: dict[str, Any] = {}
        for field, value in updates.items():
            if field == "line_items":
                continue
            columns[field] = _db_value(value)

        if _PRICING_FIELDS & updates.keys():
            line_items = data.line_items if data.line_items is not None else current.line_items
            totals = compute_totals(
                line_items,
                discount_cents=updates.get("discount_cents", current.discount_cents),
                tax_rate_percent=current.tax_rate_percent,
                deposit_percent=updates.get("deposit_percent", current.deposit_percent),
            )
            if data.line_items is not None:
                columns["line_items"] = _line_items_json(data.line_items)
            columns.update({
                "subtotal_cents": totals.subtotal_cents,
                "discount_cents": totals.discount_cents,
                "tax_cents": totals.tax_cents,
                "total_cents": totals.total_cents,
                "deposit_percent": totals.deposit_percent,
                "deposit_cents": totals.deposit_cents,
            })

        now = now_utc()
        set_parts = [f"{field} = %s" for field in columns] + ["updated_at = %s"]
        params = list(columns.values()) + [now, quote_id]

        row = self.postgres.execute_returning(
            f"""
            UPDATE quotes
            SET {', '.join(set_parts)}
            WHERE id = %s AND deleted_at IS NULL
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = Quote.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json")
        )
        if changes:
            self.audit.log_change(
                entity_type="quote",
                entity_id=quote_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def delete(self, quote_id: UUID) -> bool:
        """Soft delete. Returns False if the quote doesn't exist."""
        current = self.get_by_id(quote_id)
        if current is None:
            return False

        self.postgres.execute(
            "UPDATE quotes SET deleted_at = %s WHERE id = %s",
            (now_utc(), quote_id)
        )

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )

        return True

    def send(self, quote_id: UUID, send_email: bool = True, send_sms: bool = True) -> Quote:
        """
        Send a quote to its customer and mark it sent.

        Delivery failures are logged and never stop the status change; the
        tradie can resend.

        Raises:
            ValueError: Quote or customer not found
        """
        quote = self.get_by_id(quote_id)
        if quote is None:
            raise ValueError(f"Quote {quote_id} not found")
        customer = self._get_customer(quote.customer_id)

        email_sent = sms_sent = False
        if self.notifier is None:
            logger.warning(f"No notifier configured, quote {quote_id} marked sent without delivery")
        else:
            account = self.postgres.execute_single(
                "SELECT business_name, email FROM users WHERE id = %s",
                (quote.user_id,)
            ) or {}
            delivery = self.notifier.send_quote(
                quote,
                customer,
                business_name=account.get("business_name") or "Your tradie",
                send_email=send_email,
                send_sms=send_sms,
                business_email=account.get("email"),
            )
            email_sent, sms_sent = delivery.email_sent, delivery.sms_sent
            for error in delivery.errors:
                logger.warning(f"Quote {quote.quote_number} delivery problem: {error}")

        now = now_utc()
        row = self.postgres.execute_returning(
            """
            UPDATE quotes
            SET status = %s, sent_at = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (QuoteStatus.SENT.value, now, now, quote_id)
        )[0]

        updated = Quote.model_validate(row)

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote_id,
            action=AuditAction.UPDATE,
            changes={
                "status": {"old": quote.status.value, "new": QuoteStatus.SENT.value},
                "email_sent": email_sent,
                "sms_sent": sms_sent,
            }
        )

        self.event_bus.publish(
            QuoteSent.create(quote=updated, email_sent=email_sent, sms_sent=sms_sent)
        )

        return updated

    def mark_accepted(self, quote_id: UUID) -> Quote:
        """
        Record the customer's acceptance. Already-accepted quotes are returned as is.

        Raises:
            ValueError: If quote not found
        """
        current = self.get_by_id(quote_id)
        if current is None:
            raise ValueError(f"Quote {quote_id} not found")
        if current.status == QuoteStatus.ACCEPTED:
            return current

        now = now_utc()
        row = self.postgres.execute_returning(
            """
            UPDATE quotes
            SET status = %s, accepted_at = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (QuoteStatus.ACCEPTED.value, now, now, quote_id)
        )[0]

        self.audit.log_change(
            entity_type="quote",
            entity_id=quote_id,
            action=AuditAction.UPDATE,
            changes={"status": {"old": current.status.value, "new": QuoteStatus.ACCEPTED.value}}
        )

        return Quote.model_validate(row)

    def list(
        self,
        status: QuoteStatus | None = None,
        customer_id: UUID | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Quote], int]:
        """
        One page of quotes, newest first.

        Returns:
            (quotes on this page, total matching)
        """
        conditions = ["deleted_at IS NULL"]
        params: list[Any] = []

        if status is not None:
            conditions.append("status = %s")
            params.append(_db_value(status))
        if customer_id is not None:
            conditions.append("customer_id = %s")
            params.append(customer_id)

        where = " AND ".join(conditions)

        rows = self.postgres.execute(
            f"""
            SELECT * FROM quotes
            WHERE {where}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, (page - 1) * limit])
        )
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM quotes WHERE {where}",
            tuple(params)
        )

        return [Quote.model_validate(row) for row in rows], int(total or 0)
