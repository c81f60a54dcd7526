"""API test fixtures - authenticated TestClient over mocked services."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from api.webhooks import create_webhooks_router
from auth.security_middleware import AuthMiddleware
from auth.session import SessionManager
from auth.types import Session
from core.services.booking_service import BookingService
from core.services.customer_service import CustomerService
from core.services.payment_service import PaymentService
from core.services.quote_service import QuoteService
from core.services.subscription_service import SubscriptionService
from utils.timezone import now_utc

WEBHOOK_SECRET = "whsec_test"


# =============================================================================
# SERVICES DICT
# =============================================================================


@pytest.fixture
def services():
    return {
        "customer": Mock(spec=CustomerService),
        "booking": Mock(spec=BookingService),
        "quote": Mock(spec=QuoteService),
        "payment": Mock(spec=PaymentService),
        "subscription": Mock(spec=SubscriptionService),
    }


# =============================================================================
# AUTH FIXTURES
# =============================================================================


@pytest.fixture
def mock_session_manager(test_user_id):
    now = now_utc()
    mock = Mock(spec=SessionManager)
    mock.validate_session.return_value = Session(
        token="test-token",
        user_id=test_user_id,
        created_at=now,
        expires_at=now + timedelta(hours=24),
        last_activity_at=now,
    )
    return mock


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(mock_session_manager, services, business_config):
    """FastAPI app with auth middleware, error handlers, and data/actions/webhook routes."""
    app = FastAPI()
    app.add_middleware(AuthMiddleware, session_manager=mock_session_manager)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services, business_config), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(create_webhooks_router(services["payment"], WEBHOOK_SECRET), prefix="/webhooks")

    return app


@pytest.fixture
def client(app):
    """Authenticated test client."""
    c = TestClient(app, raise_server_exceptions=False)
    c.cookies.set("session_token", "test-token")
    return c


@pytest.fixture
def unauthed_client(app):
    """Unauthenticated test client (no session cookie)."""
    return TestClient(app, raise_server_exceptions=False)
