"""
Payment service: card payments from customers through Stripe.

create_intent stores a pending payment next to the Stripe PaymentIntent;
the payment_intent.* webhooks move it to succeeded or failed. Webhooks
arrive without a session, so the account is taken from the intent's
metadata and set as the user context before any row is touched.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict
from uuid import UUID, uuid4

from clients.postgres_client import PostgresClient
from clients.stripe_client import StripeClient
from core.audit import AuditLogger, AuditAction
from core.config import BusinessConfig
from core.event_bus import EventBus
from core.events import PaymentFailed, PaymentSucceeded
from core.models import (
    Payment,
    PaymentIntentCreate,
    PaymentIntentResult,
    PaymentStatus,
)
from core.services.subscription_service import SUBSCRIPTION_EVENTS, SubscriptionService
from utils.user_context import get_current_user_id, user_context
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class PaymentService:
    """Service for payment operations and Stripe webhook dispatch."""

    def __init__(
        self,
        postgres: PostgresClient,
        audit: AuditLogger,
        event_bus: EventBus,
        stripe: StripeClient,
        config: BusinessConfig,
        subscriptions: SubscriptionService | None = None,
        on_succeeded: Callable[[PaymentSucceeded], None] | None = None,
    ):
        self.postgres = postgres
        self.audit = audit
        self.event_bus = event_bus
        self.stripe = stripe
        self.config = config
        self.subscriptions = subscriptions
        self.on_succeeded = on_succeeded

    def _require(self, table: str, entity_id: UUID) -> None:
        row = self.postgres.execute_single(
            f"SELECT id FROM {table} WHERE id = %s AND deleted_at IS NULL",
            (entity_id,)
        )
        if row is None:
            raise ValueError(f"{table[:-1].capitalize()} {entity_id} not found")

    def create_intent(self, data: PaymentIntentCreate) -> PaymentIntentResult:
        """
        Start a card payment and record it as pending.

        Raises:
            ValueError: Booking or quote not found for this account
            PaymentGatewayError: Stripe rejected the intent
        """
        user_id = get_current_user_id()
        if data.booking_id is not None:
            self._require("bookings", data.booking_id)
        if data.quote_id is not None:
            self._require("quotes", data.quote_id)

        metadata = {
            "user_id": str(user_id),
            "booking_id": str(data.booking_id) if data.booking_id else "",
            "quote_id": str(data.quote_id) if data.quote_id else "",
            "payment_type": data.payment_type.value,
        }

        intent = self.stripe.create_payment_intent(
            amount_cents=data.amount_cents,
            currency=self.config.currency,
            description=data.description,
            metadata=metadata,
        )

        now = now_utc()
        row = self.postgres.execute_returning(
            """
            INSERT INTO payments (
                id, user_id, booking_id, quote_id, stripe_payment_intent_id,
                amount_cents, currency, status, payment_type, description,
                created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), user_id, data.booking_id, data.quote_id, intent["id"],
                data.amount_cents, self.config.currency, PaymentStatus.PENDING.value,
                data.payment_type.value, data.description, now, now
            )
        )[0]

        payment = Payment.model_validate(row)

        self.audit.log_change(
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.CREATE,
            changes={"created": payment.model_dump(mode="json")}
        )

        logger.info(f"Payment intent {intent['id']} created for {data.amount_cents} cents")

        return PaymentIntentResult(
            client_secret=intent["client_secret"],
            payment_intent_id=intent["id"],
            payment=payment,
        )

    def get_by_intent_id(self, payment_intent_id: str) -> Payment | None:
        row = self.postgres.execute_single(
            "SELECT * FROM payments WHERE stripe_payment_intent_id = %s",
            (payment_intent_id,)
        )
        if row is None:
            return None
        return Payment.model_validate(row)

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    def handle_event(self, event: Dict[str, Any]) -> bool:
        """
        Dispatch a verified Stripe event.

        Returns True when the event changed something, False when it was
        acknowledged and ignored (unknown type, no account, no payment).
        """
        event_type = event.get("type", "")

        if event_type in ("payment_intent.succeeded", "payment_intent.payment_failed"):
            intent = event.get("data", {}).get("object", {})
            raw_user_id = (intent.get("metadata") or {}).get("user_id")
            if not raw_user_id:
                logger.warning(f"{event_type} for intent {intent.get('id')} has no user_id metadata")
                return False
            try:
                user_id = UUID(raw_user_id)
            except ValueError:
                logger.warning(f"{event_type} for intent {intent.get('id')} has invalid user_id metadata")
                return False

            with user_context(user_id):
                if event_type == "payment_intent.succeeded":
                    return self._payment_succeeded(intent)
                return self._payment_failed(intent)

        if event_type in SUBSCRIPTION_EVENTS:
            if self.subscriptions is None:
                logger.warning(f"No subscription service configured, ignoring {event_type}")
                return False
            return self.subscriptions.apply_event(event) is not None

        logger.info(f"Unhandled Stripe event type: {event_type}")
        return False

    def _set_status(self, payment: Payment, fields: dict[str, Any]) -> Payment:
        now = now_utc()
        set_parts = [f"{field} = %s" for field in fields] + ["updated_at = %s"]
        params = [_db_value(v) for v in fields.values()] + [now, payment.id]

        row = self.postgres.execute_returning(
            f"""
            UPDATE payments
            SET {', '.join(set_parts)}
            WHERE id = %s
            RETURNING *
            """,
            tuple(params)
        )[0]

        self.audit.log_change(
            entity_type="payment",
            entity_id=payment.id,
            action=AuditAction.UPDATE,
            changes={"status": {"old": payment.status.value, "new": _db_value(fields["status"])}}
        )

        return Payment.model_validate(row)

    def _payment_succeeded(self, intent: Dict[str, Any]) -> bool:
        payment = self.get_by_intent_id(intent.get("id"))
        if payment is None:
            logger.warning(f"No payment recorded for intent {intent.get('id')}")
            return False
        if payment.status == PaymentStatus.SUCCEEDED:
            # Redelivery after a failed settle: the marks are idempotent, so re-run them
            self._settle(payment)
            return False

        updated = self._set_status(payment, {
            "status": PaymentStatus.SUCCEEDED,
            "paid_at": now_utc(),
            "stripe_charge_id": intent.get("latest_charge"),
        })

        self._settle(updated)
        self.event_bus.publish(PaymentSucceeded.create(payment=updated))
        return True

    def _settle(self, payment: Payment) -> None:
        """
        Apply a succeeded payment to its booking and quote.

        Called directly rather than through the event bus: an error here must
        reach the webhook route, which answers 500 so Stripe redelivers.
        """
        if self.on_succeeded is not None:
            self.on_succeeded(PaymentSucceeded.create(payment=payment))

    def _payment_failed(self, intent: Dict[str, Any]) -> bool:
        payment = self.get_by_intent_id(intent.get("id"))
        if payment is None:
            logger.warning(f"No payment recorded for intent {intent.get('id')}")
            return False

        error = intent.get("last_payment_error") or {}
        updated = self._set_status(payment, {
            "status": PaymentStatus.FAILED,
            "failure_reason": error.get("message"),
        })

        self.event_bus.publish(PaymentFailed.create(payment=updated))
        return True

    def list(
        self,
        status: PaymentStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Payment], int]:
        """
        One page of payments, newest first.

        Returns:
            (payments on this page, total matching)
        """
        conditions = ["TRUE"]
        params: list[Any] = []

        if status is not None:
            conditions.append("status = %s")
            params.append(_db_value(status))

        where = " AND ".join(conditions)

        rows = self.postgres.execute(
            f"""
            SELECT * FROM payments
            WHERE {where}
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params + [limit, (page - 1) * limit])
        )
        total = self.postgres.execute_scalar(
            f"SELECT COUNT(*) FROM payments WHERE {where}",
            tuple(params)
        )

        return [Payment.model_validate(row) for row in rows], int(total or 0)
