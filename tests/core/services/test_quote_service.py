"""Tests for QuoteService: numbering, totals, sending."""

import logging
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from core.audit import AuditAction
from core.event_bus import EventBus
from core.events import QuoteSent
from core.exceptions import QuoteTotalsError
from core.models import QuoteCreate, QuoteStatus, QuoteUpdate
from core.notifications import DeliveryResult, Notifier
from core.services.quote_service import QuoteService
from utils.timezone import now_utc

# Positions in the INSERT parameter tuple
NUMBER, SUBTOTAL, DISCOUNT, RATE, TAX, TOTAL, DEPOSIT_PERCENT, DEPOSIT, STATUS, VALID_UNTIL = (
    4, 8, 9, 10, 11, 12, 13, 14, 15, 16
)


@pytest.fixture
def event_bus():
    return MagicMock(spec=EventBus)


@pytest.fixture
def notifier():
    return MagicMock(spec=Notifier)


@pytest.fixture
def service(postgres, audit, event_bus, business_config, notifier):
    return QuoteService(postgres, audit, event_bus, business_config, notifier)


def _create_data(customer_id, **overrides):
    data = {
        "customer_id": customer_id,
        "title": "Bathroom renovation",
        "line_items": [
            {"description": "Labour", "quantity": "1", "unit_price_cents": 10000},
            {"description": "Tiles", "quantity": "2", "unit_price_cents": 2500},
        ],
    }
    data.update(overrides)
    return QuoteCreate(**data)


class TestCreate:

    def test_numbers_and_prices_quote(
        self, service, postgres, tx, audit, make_customer_row, make_quote_row, as_test_user, test_user_id
    ):
        customer = make_customer_row()
        postgres.execute_single.return_value = customer
        tx.execute_single.return_value = {"count": 4}
        tx.execute_returning.return_value = [make_quote_row()]

        service.create(_create_data(customer["id"], discount_cents=1000, deposit_percent=Decimal("50")))

        year = now_utc().year
        tx.lock_account.assert_called_once_with(test_user_id)
        assert tx.execute_single.call_args.args[1] == (year,)

        params = tx.execute_returning.call_args.args[1]
        assert params[NUMBER] == f"QT-{year}-0005"
        assert params[SUBTOTAL] == 14000
        assert params[DISCOUNT] == 1000
        assert params[RATE] == Decimal("10")
        assert params[TAX] == 1400
        assert params[TOTAL] == 15400
        assert params[DEPOSIT_PERCENT] == Decimal("50")
        assert params[DEPOSIT] == 7700
        assert params[STATUS] == "draft"
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.CREATE

    def test_first_quote_of_year(self, service, postgres, tx, make_customer_row, make_quote_row, as_test_user):
        postgres.execute_single.return_value = make_customer_row()
        tx.execute_single.return_value = {"count": 0}
        tx.execute_returning.return_value = [make_quote_row()]

        service.create(_create_data(uuid4()))

        assert tx.execute_returning.call_args.args[1][NUMBER].endswith("-0001")

    def test_line_items_stored_as_json(self, service, postgres, tx, make_customer_row, make_quote_row, as_test_user):
        postgres.execute_single.return_value = make_customer_row()
        tx.execute_single.return_value = {"count": 0}
        tx.execute_returning.return_value = [make_quote_row()]

        service.create(_create_data(uuid4()))

        items = tx.execute_returning.call_args.args[1][7].adapted
        assert [item["total_cents"] for item in items] == [10000, 5000]

    def test_valid_until_defaults_to_validity_window(
        self, service, postgres, tx, make_customer_row, make_quote_row, as_test_user
    ):
        postgres.execute_single.return_value = make_customer_row()
        tx.execute_single.return_value = {"count": 0}
        tx.execute_returning.return_value = [make_quote_row()]

        before = now_utc()
        service.create(_create_data(uuid4()))

        valid_until = tx.execute_returning.call_args.args[1][VALID_UNTIL]
        assert valid_until - before >= timedelta(days=30)
        assert valid_until - before < timedelta(days=30, minutes=1)

    def test_discount_exceeding_items_rejected(self, service, postgres, make_customer_row, as_test_user):
        postgres.execute_single.return_value = make_customer_row()

        with pytest.raises(QuoteTotalsError):
            service.create(_create_data(uuid4(), discount_cents=20000))

        postgres.transaction.assert_not_called()

    def test_unknown_booking_rejected(self, service, postgres, make_customer_row, as_test_user):
        postgres.execute_single.side_effect = [make_customer_row(), None]

        with pytest.raises(ValueError, match="Booking .* not found"):
            service.create(_create_data(uuid4(), booking_id=uuid4()))

    def test_unknown_customer_rejected(self, service, postgres, as_test_user):
        postgres.execute_single.return_value = None

        with pytest.raises(ValueError, match="Customer .* not found"):
            service.create(_create_data(uuid4()))


class TestUpdate:

    def test_discount_change_recomputes_totals(self, service, postgres, audit, make_quote_row, as_test_user):
        current = make_quote_row()
        postgres.execute_single.return_value = current
        postgres.execute_returning.return_value = [dict(
            current, discount_cents=1000, subtotal_cents=9000, tax_cents=900, total_cents=9900,
        )]

        service.update(current["id"], QuoteUpdate(discount_cents=1000))

        sql, params = postgres.execute_returning.call_args.args
        assert "subtotal_cents = %s" in sql
        assert "total_cents = %s" in sql
        assert "line_items = %s" not in sql
        assert 9000 in params and 900 in params and 9900 in params
        assert "total_cents" in audit.log_change.call_args.kwargs["changes"]

    def test_recompute_uses_stored_tax_rate(self, service, postgres, make_quote_row, as_test_user):
        current = make_quote_row(tax_rate_percent=Decimal("15"), tax_cents=1500, total_cents=11500)
        postgres.execute_single.return_value = current
        postgres.execute_returning.return_value = [current]

        service.update(current["id"], QuoteUpdate(deposit_percent=Decimal("10")))

        params = postgres.execute_returning.call_args.args[1]
        assert 1500 in params
        assert 11500 in params
        assert 1150 in params

    def test_explicit_null_clears_deposit(self, service, postgres, make_quote_row, as_test_user):
        current = make_quote_row(deposit_percent=Decimal("50"), deposit_cents=5500)
        postgres.execute_single.return_value = current
        postgres.execute_returning.return_value = [dict(current, deposit_percent=None, deposit_cents=None)]

        updated = service.update(current["id"], QuoteUpdate(deposit_percent=None))

        sql = postgres.execute_returning.call_args.args[0]
        assert "deposit_cents = %s" in sql
        assert updated.deposit_cents is None

    def test_new_line_items_written(self, service, postgres, make_quote_row, as_test_user):
        current = make_quote_row()
        postgres.execute_single.return_value = current
        postgres.execute_returning.return_value = [current]

        service.update(current["id"], QuoteUpdate(
            line_items=[{"description": "Labour", "quantity": "3", "unit_price_cents": 10000}],
        ))

        sql, params = postgres.execute_returning.call_args.args
        assert "line_items = %s" in sql
        assert 30000 in params
        assert 33000 in params

    def test_non_pricing_change_leaves_totals(self, service, postgres, make_quote_row, as_test_user):
        current = make_quote_row()
        postgres.execute_single.return_value = current
        postgres.execute_returning.return_value = [dict(current, title="Ensuite renovation")]

        service.update(current["id"], QuoteUpdate(title="Ensuite renovation"))

        assert "total_cents" not in postgres.execute_returning.call_args.args[0]

    def test_status_written_as_value(self, service, postgres, make_quote_row, as_test_user):
        current = make_quote_row()
        postgres.execute_single.return_value = current
        postgres.execute_returning.return_value = [dict(current, status="rejected")]

        service.update(current["id"], QuoteUpdate(status=QuoteStatus.REJECTED))

        assert "rejected" in postgres.execute_returning.call_args.args[1]

    def test_merged_discount_validated(self, service, postgres, make_quote_row, as_test_user):
        postgres.execute_single.return_value = make_quote_row()

        with pytest.raises(QuoteTotalsError):
            service.update(uuid4(), QuoteUpdate(discount_cents=10001))

        postgres.execute_returning.assert_not_called()

    def test_not_found(self, service, postgres, as_test_user):
        postgres.execute_single.return_value = None

        with pytest.raises(ValueError, match="Quote .* not found"):
            service.update(uuid4(), QuoteUpdate(title="Anything"))


class TestSend:

    def test_delivers_marks_sent_and_publishes(
        self, service, postgres, notifier, event_bus, audit, make_quote_row, make_customer_row, as_test_user
    ):
        customer = make_customer_row()
        quote = make_quote_row(customer_id=customer["id"])
        postgres.execute_single.side_effect = [
            quote, customer, {"business_name": "Taylor Plumbing", "email": "jobs@taylor.test"},
        ]
        notifier.send_quote.return_value = DeliveryResult(email_sent=True, errors=["sms: down"])
        postgres.execute_returning.return_value = [dict(quote, status="sent", sent_at=now_utc())]

        sent = service.send(quote["id"], send_email=True, send_sms=True)

        assert sent.status == QuoteStatus.SENT
        kwargs = notifier.send_quote.call_args.kwargs
        assert kwargs["business_name"] == "Taylor Plumbing"
        assert kwargs["business_email"] == "jobs@taylor.test"

        changes = audit.log_change.call_args.kwargs["changes"]
        assert changes["status"] == {"old": "draft", "new": "sent"}
        assert changes["email_sent"] is True
        assert changes["sms_sent"] is False

        event = event_bus.publish.call_args.args[0]
        assert isinstance(event, QuoteSent)
        assert event.email_sent and not event.sms_sent

    def test_without_notifier_still_marks_sent(
        self, postgres, audit, event_bus, business_config, make_quote_row, make_customer_row, caplog, as_test_user
    ):
        service = QuoteService(postgres, audit, event_bus, business_config)
        quote = make_quote_row()
        postgres.execute_single.side_effect = [quote, make_customer_row()]
        postgres.execute_returning.return_value = [dict(quote, status="sent")]

        with caplog.at_level(logging.WARNING, logger="core.services.quote_service"):
            service.send(quote["id"])

        assert "marked sent without delivery" in caplog.text
        event_bus.publish.assert_called_once()

    def test_not_found(self, service, postgres, notifier, as_test_user):
        postgres.execute_single.return_value = None

        with pytest.raises(ValueError, match="not found"):
            service.send(uuid4())
        notifier.send_quote.assert_not_called()


class TestAcceptAndDelete:

    def test_mark_accepted(self, service, postgres, audit, make_quote_row, as_test_user):
        quote = make_quote_row(status="sent")
        postgres.execute_single.return_value = quote
        postgres.execute_returning.return_value = [dict(quote, status="accepted", accepted_at=now_utc())]

        accepted = service.mark_accepted(quote["id"])

        assert accepted.status == QuoteStatus.ACCEPTED
        assert audit.log_change.call_args.kwargs["changes"]["status"] == {"old": "sent", "new": "accepted"}

    def test_mark_accepted_is_idempotent(self, service, postgres, make_quote_row, as_test_user):
        postgres.execute_single.return_value = make_quote_row(status="accepted")

        service.mark_accepted(uuid4())

        postgres.execute_returning.assert_not_called()

    def test_soft_delete(self, service, postgres, audit, make_quote_row, as_test_user):
        quote = make_quote_row()
        postgres.execute_single.return_value = quote

        assert service.delete(quote["id"]) is True
        assert "SET deleted_at" in postgres.execute.call_args.args[0]
        assert audit.log_change.call_args.kwargs["action"] == AuditAction.DELETE

    def test_delete_missing(self, service, postgres, as_test_user):
        postgres.execute_single.return_value = None
        assert service.delete(uuid4()) is False


class TestList:

    def test_status_filter(self, service, postgres, make_quote_row, as_test_user):
        postgres.execute.return_value = [make_quote_row(status="sent")]
        postgres.execute_scalar.return_value = 1

        quotes, total = service.list(status=QuoteStatus.SENT)

        assert total == 1
        assert quotes[0].status == QuoteStatus.SENT
        assert postgres.execute.call_args.args[1] == ("sent", 20, 0)
