"""Tests for app assembly in main.py."""

from unittest.mock import MagicMock, Mock

import pytest
from starlette.testclient import TestClient

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.service import AuthService
from auth.session import SessionManager
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.stripe_client import StripeClient
from clients.valkey_client import ValkeyClient
from core.event_bus import EventBus
from core.notifications import Notifier
from core.services.booking_service import BookingService
from core.services.reminder_service import ReminderService
from main import Clients, build_services, create_app


@pytest.fixture
def clients():
    return Clients(
        postgres=MagicMock(spec=PostgresClient),
        valkey=MagicMock(spec=ValkeyClient),
        email=MagicMock(spec=EmailGatewayClient),
        sms=None,
        stripe=MagicMock(spec=StripeClient),
        stripe_webhook_secret="whsec_test",
        stripe_price_ids={"starter_monthly": "price_1"},
    )


class TestBuildServices:

    def test_all_services_present(self, clients, business_config):
        services = build_services(clients, business_config, Mock(spec=AuthDatabase))

        assert set(services) == {
            "customer", "booking", "quote", "payment", "subscription",
            "reminder", "notifier", "event_bus",
        }
        assert isinstance(services["booking"], BookingService)
        assert isinstance(services["reminder"], ReminderService)
        assert isinstance(services["notifier"], Notifier)

    @pytest.mark.parametrize("event_type", [
        "BookingCreated", "BookingCancelled", "BookingRescheduled",
    ])
    def test_handlers_subscribed(self, clients, business_config, event_type):
        bus = build_services(clients, business_config, Mock(spec=AuthDatabase))["event_bus"]

        assert isinstance(bus, EventBus)
        assert bus.subscriber_count(event_type) == 1

    def test_payment_settles_directly(self, clients, business_config):
        services = build_services(clients, business_config, Mock(spec=AuthDatabase))

        assert services["event_bus"].subscriber_count("PaymentSucceeded") == 0
        assert services["payment"].on_succeeded is not None

    def test_services_share_one_bus(self, clients, business_config):
        services = build_services(clients, business_config, Mock(spec=AuthDatabase))

        assert services["booking"].event_bus is services["event_bus"]
        assert services["quote"].event_bus is services["event_bus"]


class TestCreateApp:

    @pytest.fixture
    def client(self, business_config):
        services = {
            name: MagicMock()
            for name in ("customer", "booking", "quote", "payment", "subscription")
        }
        session_manager = Mock(spec=SessionManager)
        session_manager.validate_session.return_value = None

        app = create_app(
            services,
            auth_service=Mock(spec=AuthService),
            session_manager=session_manager,
            auth_config=AuthConfig(),
            business_config=business_config,
            stripe_webhook_secret="whsec_test",
        )
        return TestClient(app, raise_server_exceptions=False)

    def test_health_is_public(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["data"] == {"status": "ok"}

    def test_api_requires_session(self, client):
        response = client.get("/api/data", params={"type": "customers"})

        assert response.status_code == 401

    def test_rejected_request_still_gets_request_id(self, client):
        response = client.get("/api/data", params={"type": "customers"}, headers={"X-Request-ID": "req-77"})

        assert response.headers["X-Request-ID"] == "req-77"

    def test_webhook_route_mounted(self, client):
        response = client.post("/webhooks/stripe", content=b"{}")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_SIGNATURE"
