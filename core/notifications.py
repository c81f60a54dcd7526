"""
Customer and account notifications over email and SMS.

Renders the booking reminder, quote and welcome messages and hands them to
the email gateway and Twilio clients. Gateway failures on customer
messages are collected into the DeliveryResult, not raised, so one dead
channel never blocks the other.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.sms_client import SmsClient, SmsGatewayError
from core.config import BusinessConfig
from core.models import Booking, Customer, Quote, ReminderType
from utils.timezone import format_local

logger = logging.getLogger(__name__)


def format_currency(cents: int, currency: str = "AUD") -> str:
    """2500 -> '$25.00 AUD', 123456 -> '$1,234.56 AUD'."""
    sign = "-" if cents < 0 else ""
    dollars = Decimal(abs(cents)) / 100
    return f"{sign}${dollars:,.2f} {currency}"


@dataclass
class DeliveryResult:
    """Which channels went out, and what went wrong on the others."""

    email_sent: bool = False
    sms_sent: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return self.email_sent or self.sms_sent

    @property
    def attempted(self) -> bool:
        return self.delivered or bool(self.errors)


class Notifier:
    """
    Sends rendered messages to customers and tradies.

    sms_client may be None when Twilio isn't configured; SMS is then
    skipped with a warning.
    """

    def __init__(
        self,
        email_client: EmailGatewayClient,
        sms_client: SmsClient | None,
        config: BusinessConfig,
        app_name: str = "TradeFlow",
    ):
        self.email_client = email_client
        self.sms_client = sms_client
        self.config = config
        self.app_name = app_name

    def quote_link(self, quote: Quote) -> str:
        return f"{self.config.app_base_url}/quotes/{quote.id}/view"

    def _email(self, result: DeliveryResult, to: str, subject: str, body: str, reply_to: str | None) -> None:
        try:
            self.email_client.send_email(
                to=to, subject=subject, body=body, sender="notifications", reply_to=reply_to
            )
            result.email_sent = True
        except EmailGatewayError as e:
            logger.error(f"Email to {to} failed: {e}")
            result.errors.append(f"email: {e}")

    def _sms(self, result: DeliveryResult, to: str, body: str) -> None:
        if self.sms_client is None:
            logger.warning("SMS not configured, message not sent")
            result.errors.append("sms: not configured")
            return
        try:
            self.sms_client.send(to, body)
            result.sms_sent = True
        except (SmsGatewayError, ValueError) as e:
            logger.error(f"SMS to {to} failed: {e}")
            result.errors.append(f"sms: {e}")

    # -------------------------------------------------------------------------
    # Booking reminders
    # -------------------------------------------------------------------------

    def send_booking_reminder(
        self,
        booking: Booking,
        customer: Customer,
        business_name: str,
        business_phone: str | None,
        channels: ReminderType = ReminderType.BOTH,
        business_email: str | None = None,
    ) -> DeliveryResult:
        """Remind a customer about an upcoming job on the requested channels."""
        result = DeliveryResult()
        when = format_local(booking.scheduled_start, self.config.display_timezone)
        contact = f" Questions? Call {business_phone}" if business_phone else ""

        if channels.includes_email and customer.email:
            body = (
                f"Hi {customer.first_name},\n\n"
                f"This is a reminder about your upcoming appointment:\n\n"
                f"{booking.title}\n"
                f"Date & time: {when}\n"
                + (f"Address: {booking.address}\n" if booking.address else "")
                + f"\nYour tradie from {business_name} will be there on time."
                + (f"\nTo reschedule, contact us on {business_phone}." if business_phone else "")
                + f"\n\nPowered by {self.app_name}"
            )
            self._email(result, customer.email, f"Reminder: {booking.title}", body, business_email)

        if channels.includes_sms and customer.phone:
            text = (
                f"Hi {customer.first_name}, this is a reminder about your {booking.title} "
                f"on {when}. {business_name} will see you then.{contact}"
            )
            self._sms(result, customer.phone, text)

        return result

    # -------------------------------------------------------------------------
    # Quotes
    # -------------------------------------------------------------------------

    def send_quote(
        self,
        quote: Quote,
        customer: Customer,
        business_name: str,
        send_email: bool = True,
        send_sms: bool = True,
        business_email: str | None = None,
    ) -> DeliveryResult:
        """Tell the customer a quote is ready, with a link to view it."""
        result = DeliveryResult()
        link = self.quote_link(quote)
        total = format_currency(quote.total_cents, self.config.currency)

        if send_email and customer.email:
            valid_until = format_local(quote.valid_until, self.config.display_timezone, with_time=False)
            lines = [
                f"Hi {customer.first_name},",
                "",
                f"{business_name} has sent you a quote.",
                "",
                f"Quote number: {quote.quote_number}",
                f"Total (inc. GST): {total}",
            ]
            if quote.deposit_cents:
                lines.append(f"Deposit required: {format_currency(quote.deposit_cents, self.config.currency)}")
            lines += [f"Valid until: {valid_until}", "", f"View your quote: {link}"]
            self._email(
                result,
                customer.email,
                f"Quote {quote.quote_number} from {business_name}",
                "\n".join(lines),
                business_email,
            )

        if send_sms and customer.phone:
            text = (
                f"Hi {customer.first_name}, {business_name} has sent you a quote "
                f"({quote.quote_number}). View it here: {link}"
            )
            self._sms(result, customer.phone, text)

        return result

    # -------------------------------------------------------------------------
    # Account
    # -------------------------------------------------------------------------

    def send_welcome(self, email: str, business_name: str | None, trial_days: int) -> None:
        """
        Welcome a new account.

        Raises:
            EmailGatewayError: Caller decides whether a failure matters
        """
        greeting = business_name or "there"
        body = (
            f"Hi {greeting},\n\n"
            f"Welcome to {self.app_name}! Your {trial_days}-day free trial has started.\n\n"
            "Add your first customer, book a job and send a quote in minutes.\n\n"
            f"{self.config.app_base_url}"
        )
        self.email_client.send_email(
            to=email,
            subject=f"Welcome to {self.app_name}",
            body=body,
            sender="system",
        )
