"""
TradeFlow API server.

Secrets come from Vault; everything else is wired here by hand. Run with
`python main.py` or `uvicorn main:build_app --factory`.
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI

from api.actions import create_actions_router
from api.base import success_response
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.webhooks import create_webhooks_router
from auth.api import create_auth_router
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.security_middleware import AuthMiddleware
from auth.service import AuthService
from auth.session import SessionManager
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.sms_client import SmsClient
from clients.stripe_client import StripeClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    VaultError,
    get_database_url,
    get_email_config,
    get_sms_config,
    get_stripe_config,
    get_stripe_price_ids,
    get_valkey_url,
)
from core.audit import AuditLogger
from core.config import BusinessConfig
from core.event_bus import EventBus
from core.handlers.booking_cancelled_handler import handle_booking_cancelled
from core.handlers.booking_created_handler import handle_booking_created
from core.handlers.booking_rescheduled_handler import handle_booking_rescheduled
from core.handlers.payment_succeeded_handler import handle_payment_succeeded
from core.notifications import Notifier
from core.services.booking_service import BookingService
from core.services.customer_service import CustomerService
from core.services.payment_service import PaymentService
from core.services.quote_service import QuoteService
from core.services.reminder_service import ReminderService
from core.services.subscription_service import SubscriptionService

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Quiet per-request noise from the HTTP client libraries
logging.getLogger("urllib3").setLevel(logging.WARNING)
logging.getLogger("hvac").setLevel(logging.WARNING)


@dataclass
class Clients:
    """Infrastructure clients shared by the app and the reminder worker."""

    postgres: PostgresClient
    valkey: ValkeyClient
    email: EmailGatewayClient
    sms: SmsClient | None
    stripe: StripeClient
    stripe_webhook_secret: str
    stripe_price_ids: dict


def build_clients() -> Clients:
    """
    Connect to everything the app needs, secrets from Vault.

    SMS is optional: without Twilio credentials reminders and quotes go
    out by email only.

    Raises:
        VaultError: A required secret is missing
    """
    email_config = get_email_config()
    stripe_config = get_stripe_config()

    try:
        sms = SmsClient(**get_sms_config())
    except VaultError as e:
        logger.warning(f"SMS disabled, no Twilio credentials: {e}")
        sms = None

    return Clients(
        postgres=PostgresClient(get_database_url()),
        valkey=ValkeyClient(get_valkey_url()),
        email=EmailGatewayClient(
            gateway_url=email_config["gateway_url"],
            api_key=email_config["api_key"],
            hmac_secret=email_config["hmac_secret"],
        ),
        sms=sms,
        stripe=StripeClient(stripe_config["secret_key"]),
        stripe_webhook_secret=stripe_config["webhook_secret"],
        stripe_price_ids=get_stripe_price_ids(),
    )


def build_services(
    clients: Clients,
    business_config: BusinessConfig,
    accounts: AuthDatabase,
    app_name: str = "TradeFlow",
) -> dict:
    """Create the domain services and subscribe the event handlers."""
    audit = AuditLogger(clients.postgres)
    event_bus = EventBus()
    notifier = Notifier(clients.email, clients.sms, business_config, app_name=app_name)

    reminder = ReminderService(clients.postgres, audit, business_config)
    booking = BookingService(clients.postgres, audit, event_bus)
    quote = QuoteService(clients.postgres, audit, event_bus, business_config, notifier)
    subscription = SubscriptionService(accounts, clients.stripe, clients.stripe_price_ids, audit)
    payment = PaymentService(
        clients.postgres, audit, event_bus, clients.stripe, business_config, subscription,
        on_succeeded=handle_payment_succeeded(booking, quote),
    )

    event_bus.subscribe("BookingCreated", handle_booking_created(reminder))
    event_bus.subscribe("BookingCancelled", handle_booking_cancelled(reminder))
    event_bus.subscribe("BookingRescheduled", handle_booking_rescheduled(reminder))

    return {
        "customer": CustomerService(clients.postgres, audit),
        "booking": booking,
        "quote": quote,
        "payment": payment,
        "subscription": subscription,
        "reminder": reminder,
        "notifier": notifier,
        "event_bus": event_bus,
    }


def create_app(
    services: dict,
    auth_service: AuthService,
    session_manager: SessionManager,
    auth_config: AuthConfig,
    business_config: BusinessConfig,
    stripe_webhook_secret: str,
    accounts: AuthDatabase | None = None,
) -> FastAPI:
    """Assemble the FastAPI app from already-built services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("TradeFlow API starting")
        yield
        logger.info("TradeFlow API shutting down")
        PostgresClient.close_all_pools()

    app = FastAPI(title="TradeFlow API", version="1.0.0", lifespan=lifespan)

    # Last added runs first: request IDs are assigned before auth can reject
    app.add_middleware(AuthMiddleware, session_manager=session_manager, accounts=accounts)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_auth_router(auth_service, auth_config), prefix="/auth")
    app.include_router(create_data_router(services, business_config), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(
        create_webhooks_router(services["payment"], stripe_webhook_secret), prefix="/webhooks"
    )

    @app.get("/health")
    async def health():
        return success_response({"status": "ok"}).model_dump(mode="json")

    return app


def build_app() -> FastAPI:
    """Production app: Vault secrets, real clients."""
    auth_config = AuthConfig.from_env()
    business_config = BusinessConfig.from_env()
    clients = build_clients()

    accounts = AuthDatabase(clients.postgres)
    services = build_services(clients, business_config, accounts, app_name=auth_config.app_name)

    session_manager = SessionManager(clients.valkey, auth_config)
    auth_service = AuthService(
        config=auth_config,
        auth_db=accounts,
        session_manager=session_manager,
        rate_limiter=RateLimiter(clients.valkey, auth_config),
        email_client=clients.email,
        security_logger=SecurityLogger(clients.postgres),
        notifier=services["notifier"],
        trial_days=business_config.trial_days,
    )

    return create_app(
        services,
        auth_service=auth_service,
        session_manager=session_manager,
        auth_config=auth_config,
        business_config=business_config,
        stripe_webhook_secret=clients.stripe_webhook_secret,
        accounts=accounts,
    )


def main() -> None:
    uvicorn.run(
        build_app(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
