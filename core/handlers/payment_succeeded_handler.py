"""
Settles a succeeded payment against its booking and quote.

A deposit payment marks its booking's deposit paid; any payment against a
quote marks the quote accepted. PaymentService calls this directly on every
succeeded delivery (redeliveries included), not through the event bus, so
both marks must stay idempotent.
"""

import logging
from typing import Callable

from core.events import PaymentSucceeded
from core.models import PaymentType

logger = logging.getLogger(__name__)


def handle_payment_succeeded(booking_service, quote_service) -> Callable:
    """
    Factory that returns a PaymentSucceeded handler.

    Dependencies are captured at wiring time via closure.

    Args:
        booking_service: BookingService instance
        quote_service: QuoteService instance

    Returns:
        Handler callable that applies the payment to its booking and quote
    """

    def handler(event: PaymentSucceeded):
        payment = event.payment

        if payment.booking_id and payment.payment_type == PaymentType.DEPOSIT:
            booking_service.mark_deposit_paid(payment.booking_id)

        if payment.quote_id:
            quote_service.mark_accepted(payment.quote_id)

    return handler
