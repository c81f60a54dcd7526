"""Shared test fixtures for the TradeFlow test suite.

Services are tested against mocked PostgresClient/Transaction objects;
the row factories below build dicts shaped like RealDictCursor rows.
"""

import json

import pytest
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock
from uuid import UUID, uuid4

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from clients.postgres_client import PostgresClient, Transaction
from clients.valkey_client import ValkeyClient
from core.audit import AuditLogger
from core.config import BusinessConfig
from utils.timezone import now_utc
from utils.user_context import user_context, clear_current_user_id


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user - use for single-user tests
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_USER_EMAIL = "testuser@example.com"

# Secondary test user - use for isolation tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")


# =============================================================================
# USER CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_user_context():
    """Ensure clean user context before and after each test."""
    clear_current_user_id()
    yield
    clear_current_user_id()


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> UUID:
    return TEST_USER_B_ID


@pytest.fixture
def as_test_user(test_user_id):
    """Context manager that sets primary test user context."""
    with user_context(test_user_id):
        yield test_user_id


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
def tx():
    """Transaction handed out by postgres.transaction()."""
    return MagicMock(spec=Transaction)


@pytest.fixture
def postgres(tx):
    """PostgresClient mock whose transaction() context yields `tx`."""
    db = MagicMock(spec=PostgresClient)
    db.transaction.return_value.__enter__.return_value = tx
    db.transaction.return_value.__exit__.return_value = False
    return db


@pytest.fixture
def audit():
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def valkey():
    """ValkeyClient mock backed by a dict; `valkey.store` holds raw values, `valkey.ttls` expiries."""
    client = MagicMock(spec=ValkeyClient)
    store, ttls = {}, {}

    def set_json(key, value, expire_seconds=None):
        store[key] = json.dumps(value)
        ttls[key] = expire_seconds

    def get_json(key):
        return json.loads(store[key]) if key in store else None

    def delete(key):
        ttls.pop(key, None)
        return store.pop(key, None) is not None

    def hit(key, window_seconds):
        store[key] = str(int(store.get(key, 0)) + 1)
        ttls[key] = window_seconds
        return int(store[key]), window_seconds

    client.get.side_effect = store.get
    client.set_json.side_effect = set_json
    client.get_json.side_effect = get_json
    client.delete.side_effect = delete
    client.hit.side_effect = hit
    client.store = store
    client.ttls = ttls
    return client


@pytest.fixture
def business_config():
    return BusinessConfig(app_base_url="https://app.tradeflow.test")


# =============================================================================
# ROW FACTORIES
# =============================================================================


@pytest.fixture
def make_customer_row():
    def make(**overrides):
        now = now_utc()
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "name": "Sam Taylor",
            "email": "sam@example.com",
            "phone": "0412345678",
            "address": "12 Smith St",
            "suburb": "Newtown",
            "city": "Sydney",
            "state": "NSW",
            "postcode": "2042",
            "notes": None,
            "property_type": "house",
            "preferred_contact": "sms",
            "tags": [],
            "last_contacted_at": None,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
        }
        row.update(overrides)
        return row
    return make


@pytest.fixture
def make_booking_row():
    def make(**overrides):
        now = now_utc()
        start = now + timedelta(days=3)
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "customer_id": uuid4(),
            "title": "Replace hot water system",
            "description": None,
            "job_type": "plumbing",
            "scheduled_start": start,
            "scheduled_end": start + timedelta(hours=2),
            "all_day": False,
            "address": "12 Smith St",
            "suburb": "Newtown",
            "city": "Sydney",
            "state": "NSW",
            "postcode": "2042",
            "estimated_cost_cents": None,
            "actual_cost_cents": None,
            "materials_needed": None,
            "internal_notes": None,
            "customer_notes": None,
            "priority": "normal",
            "status": "scheduled",
            "actual_start": None,
            "actual_end": None,
            "completed_at": None,
            "cancelled_at": None,
            "cancellation_reason": None,
            "deposit_cents": None,
            "deposit_paid": False,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
        }
        row.update(overrides)
        return row
    return make


@pytest.fixture
def make_quote_row():
    def make(**overrides):
        now = now_utc()
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "customer_id": uuid4(),
            "booking_id": None,
            "quote_number": f"QT-{now.year}-0001",
            "title": "Bathroom renovation",
            "description": None,
            "line_items": [
                {"description": "Labour", "quantity": "1", "unit_price_cents": 10000,
                 "total_cents": 10000, "notes": None},
            ],
            "subtotal_cents": 10000,
            "discount_cents": 0,
            "tax_rate_percent": Decimal("10"),
            "tax_cents": 1000,
            "total_cents": 11000,
            "deposit_percent": None,
            "deposit_cents": None,
            "status": "draft",
            "valid_until": now + timedelta(days=30),
            "terms": None,
            "notes": None,
            "sent_at": None,
            "viewed_at": None,
            "accepted_at": None,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
        }
        row.update(overrides)
        return row
    return make


@pytest.fixture
def make_payment_row():
    def make(**overrides):
        now = now_utc()
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "booking_id": None,
            "quote_id": None,
            "stripe_payment_intent_id": "pi_test_123",
            "stripe_charge_id": None,
            "amount_cents": 5500,
            "currency": "AUD",
            "status": "pending",
            "payment_type": "deposit",
            "description": None,
            "paid_at": None,
            "failure_reason": None,
            "created_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        return row
    return make


@pytest.fixture
def make_reminder_row():
    def make(**overrides):
        now = now_utc()
        row = {
            "id": uuid4(),
            "user_id": TEST_USER_ID,
            "booking_id": uuid4(),
            "reminder_type": "both",
            "scheduled_for": now - timedelta(minutes=5),
            "status": "scheduled",
            "sent_at": None,
            "failure_reason": None,
            "created_at": now - timedelta(days=2),
        }
        row.update(overrides)
        return row
    return make


@pytest.fixture
def make_user():
    def make(**overrides):
        from auth.types import User

        data = {
            "id": TEST_USER_ID,
            "email": TEST_USER_EMAIL,
            "business_name": "Taylor Plumbing",
            "phone": "0298765432",
            "created_at": now_utc(),
        }
        data.update(overrides)
        return User(**data)
    return make
