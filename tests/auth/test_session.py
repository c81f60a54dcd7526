"""Tests for SessionManager - token lifecycle in Valkey."""

from datetime import timedelta

import pytest

from auth.config import AuthConfig
from auth.exceptions import SessionExpiredError
from auth.session import SessionManager
from utils.timezone import now_utc


@pytest.fixture
def config():
    return AuthConfig(session_expiry_hours=1)


@pytest.fixture
def sessions(valkey, config):
    return SessionManager(valkey, config)


class TestCreate:

    def test_token_and_expiry(self, sessions, test_user_id):
        session = sessions.create_session(test_user_id)

        assert len(session.token) > 40
        assert session.user_id == test_user_id
        assert session.expires_at - session.created_at == timedelta(hours=1)

    def test_tokens_unique(self, sessions, test_user_id):
        assert sessions.create_session(test_user_id).token != sessions.create_session(test_user_id).token

    def test_stored_with_matching_ttl(self, sessions, valkey, test_user_id):
        session = sessions.create_session(test_user_id)

        assert valkey.ttls[f"session:{session.token}"] == 3600


class TestValidate:

    def test_returns_session(self, sessions, test_user_id):
        created = sessions.create_session(test_user_id)

        session = sessions.validate_session(created.token)

        assert session.user_id == test_user_id
        assert session.created_at == created.created_at

    def test_slides_expiry(self, sessions, valkey, test_user_id):
        created = sessions.create_session(test_user_id)
        key = f"session:{created.token}"
        stored = valkey.get_json(key)
        stored["expires_at"] = (now_utc() + timedelta(minutes=5)).isoformat()
        valkey.set_json(key, stored)

        session = sessions.validate_session(created.token)

        assert session.expires_at > now_utc() + timedelta(minutes=55)
        assert valkey.ttls[key] == 3600

    def test_unknown_token(self, sessions):
        with pytest.raises(SessionExpiredError, match="not found"):
            sessions.validate_session("nope")

    def test_expired_blob_deleted(self, sessions, valkey, test_user_id):
        created = sessions.create_session(test_user_id)
        key = f"session:{created.token}"
        stored = valkey.get_json(key)
        stored["expires_at"] = (now_utc() - timedelta(seconds=1)).isoformat()
        valkey.set_json(key, stored)

        with pytest.raises(SessionExpiredError, match="Session expired"):
            sessions.validate_session(created.token)

        assert key not in valkey.store


class TestRevoke:

    def test_revoked_session_invalid(self, sessions, test_user_id):
        session = sessions.create_session(test_user_id)

        sessions.revoke_session(session.token)

        with pytest.raises(SessionExpiredError):
            sessions.validate_session(session.token)

    def test_unknown_token_is_fine(self, sessions):
        sessions.revoke_session("never-issued")
