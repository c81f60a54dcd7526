"""
Customer service for CRUD operations.

Handles customer lifecycle: create, read, update, soft delete, search.
All operations are scoped to the current account via RLS.
"""

import logging
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from core.audit import AuditLogger, AuditAction, compute_changes
from core.models import (
    Booking,
    Customer,
    CustomerCreate,
    CustomerDetail,
    CustomerUpdate,
    Quote,
)
from utils.user_context import get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = {
    "name", "email", "phone", "address", "suburb", "city", "state",
    "postcode", "notes", "property_type", "preferred_contact", "tags",
}

RECENT_BOOKINGS_LIMIT = 10
RECENT_QUOTES_LIMIT = 5


def _escape_like(value: str) -> str:
    """Make % and _ in user input match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_clause(search: str | None) -> tuple[str, tuple]:
    """WHERE fragment for the list search: name/email case-insensitive, phone substring."""
    if not search:
        return "", ()
    pattern = f"%{_escape_like(search.strip())}%"
    return (
        " AND (name ILIKE %s ESCAPE '\\' OR email ILIKE %s ESCAPE '\\' OR phone LIKE %s ESCAPE '\\')",
        (pattern, pattern, pattern),
    )


class CustomerService:
    """Service for customer operations."""

    def __init__(self, postgres: PostgresClient, audit: AuditLogger):
        self.postgres = postgres
        self.audit = audit

    def create(self, data: CustomerCreate) -> Customer:
        user_id = get_current_user_id()
        now = now_utc()

        row = self.postgres.execute_returning(
            """
            INSERT INTO customers (
                id, user_id, name, email, phone,
                address, suburb, city, state, postcode,
                notes, property_type, preferred_contact, tags,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), user_id, data.name, data.email, data.phone,
                data.address, data.suburb, data.city, data.state, data.postcode,
                data.notes, data.property_type,
                data.preferred_contact.value if data.preferred_contact else None,
                data.tags,
                now, now
            )
        )[0]

        customer = Customer.model_validate(row)

        self.audit.log_change(
            entity_type="customer",
            entity_id=customer.id,
            action=AuditAction.CREATE,
            changes={"created": data.model_dump(mode="json", exclude_none=True)}
        )

        return customer

    def get_by_id(self, customer_id: UUID) -> Customer | None:
        """Customer if found and not deleted, else None."""
        row = self.postgres.execute_single(
            "SELECT * FROM customers WHERE id = %s AND deleted_at IS NULL",
            (customer_id,)
        )
        if row is None:
            return None
        return Customer.model_validate(row)

    def get_detail(self, customer_id: UUID) -> CustomerDetail:
        """
        Customer with the 10 most recent bookings and 5 most recent quotes.

        Raises:
            ValueError: If customer not found
        """
        customer = self.get_by_id(customer_id)
        if customer is None:
            raise ValueError(f"Customer {customer_id} not found")

        booking_rows = self.postgres.execute(
            """
            SELECT * FROM bookings
            WHERE customer_id = %s AND deleted_at IS NULL
            ORDER BY scheduled_start DESC
            LIMIT %s
            """,
            (customer_id, RECENT_BOOKINGS_LIMIT)
        )
        quote_rows = self.postgres.execute(
            """
            SELECT * FROM quotes
            WHERE customer_id = %s AND deleted_at IS NULL
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (customer_id, RECENT_QUOTES_LIMIT)
        )

        return CustomerDetail(
            customer=customer,
            recent_bookings=[Booking.model_validate(r) for r in booking_rows],
            recent_quotes=[Quote.model_validate(r) for r in quote_rows],
        )

    def update(self, customer_id: UUID, data: CustomerUpdate) -> Customer:
        """
        Update customer fields and stamp last_contacted_at.

        Raises:
            ValueError: If customer not found
        """
        current = self.get_by_id(customer_id)
        if current is None:
            raise ValueError(f"Customer {customer_id} not found")

        updates = data.model_dump(mode="json", exclude_none=True)
        if not updates:
            return current

        for field in updates:
            if field not in _UPDATABLE_COLUMNS:
                logger.warning(
                    f"Attempted to update unknown field '{field}' on customer {customer_id}"
                )

        valid_updates = {k: v for k, v in updates.items() if k in _UPDATABLE_COLUMNS}
        if not valid_updates:
            return current

        now = now_utc()
        set_parts = [f"{field} = %s" for field in valid_updates]
        params = list(valid_updates.values())
        set_parts += ["last_contacted_at = %s", "updated_at = %s"]
        params += [now, now, customer_id]

        row = self.postgres.execute_returning(
            f"""
            UPDATE customers
            SET {', '.join(set_parts)}
            WHERE id = %s AND deleted_at IS NULL
            RETURNING *
            """,
            tuple(params)
        )[0]

        updated = Customer.model_validate(row)

        changes = compute_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json"),
            exclude_fields={"updated_at", "last_contacted_at"},
        )
        if changes:
            self.audit.log_change(
                entity_type="customer",
                entity_id=customer_id,
                action=AuditAction.UPDATE,
                changes=changes
            )

        return updated

    def delete(self, customer_id: UUID) -> bool:
        """
        Soft delete a customer. Their bookings and quotes are kept.

        Returns:
            True if deleted, False if not found
        """
        current = self.get_by_id(customer_id)
        if current is None:
            return False

        now = now_utc()
        self.postgres.execute_returning(
            """
            UPDATE customers
            SET deleted_at = %s, updated_at = %s
            WHERE id = %s
            RETURNING id
            """,
            (now, now, customer_id)
        )

        self.audit.log_change(
            entity_type="customer",
            entity_id=customer_id,
            action=AuditAction.DELETE,
            changes={"deleted": current.model_dump(mode="json")}
        )

        return True

    def list(
        self,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Customer], int]:
        """
        One page of customers, newest first.

        Returns:
            (customers on this page, total matching customers)
        """
        where, search_params = _search_clause(search)
        offset = (page - 1) * limit

        rows = self.postgres.execute(
            f"""
            SELECT * FROM customers
            WHERE deleted_at IS NULL{where}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            search_params + (limit, offset)
        )
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM customers WHERE deleted_at IS NULL{where}",
            search_params
        )

        return [Customer.model_validate(row) for row in rows], int(total or 0)
