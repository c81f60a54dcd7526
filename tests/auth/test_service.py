"""Tests for AuthService - signup, magic links, sessions and profile."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from psycopg2 import errors as pg_errors

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import (
    AccountExistsError,
    InvalidTokenError,
    RateLimitedError,
    SessionExpiredError,
    UserInactiveError,
)
from auth.rate_limiter import RateLimiter, RateLimitScope
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.service import AuthService, MagicLinkResult
from auth.session import SessionManager
from auth.types import MagicLinkToken, ProfileUpdate, SignupRequest
from clients.email_client import EmailGatewayClient, EmailGatewayError
from core.notifications import Notifier
from utils.timezone import now_utc


@pytest.fixture
def config():
    return AuthConfig(magic_link_expiry_minutes=10, app_base_url="https://app.tradeflow.test")


@pytest.fixture
def auth_db():
    return Mock(spec=AuthDatabase)


@pytest.fixture
def rate_limiter():
    return Mock(spec=RateLimiter)


@pytest.fixture
def security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def email_client():
    return Mock(spec=EmailGatewayClient)


@pytest.fixture
def notifier():
    return Mock(spec=Notifier)


@pytest.fixture
def sessions(valkey, config):
    return SessionManager(valkey, config)


@pytest.fixture
def service(config, auth_db, sessions, rate_limiter, email_client, security_logger, notifier):
    return AuthService(
        config=config,
        auth_db=auth_db,
        session_manager=sessions,
        rate_limiter=rate_limiter,
        email_client=email_client,
        security_logger=security_logger,
        notifier=notifier,
    )


def _logged(security_logger):
    return [c.args[0] for c in security_logger.log.call_args_list]


def _token(user, **overrides):
    now = now_utc()
    data = {
        "token": "tok", "user_id": user.id, "email": user.email,
        "created_at": now, "expires_at": now + timedelta(minutes=10), "used": False,
    }
    data.update(overrides)
    return MagicLinkToken(**data)


class TestSignup:

    def test_creates_trial_account_and_sends_link(
        self, service, auth_db, email_client, notifier, security_logger, make_user
    ):
        user = make_user(email="jo@example.com", business_name="Jo's Electrical")
        auth_db.get_user_by_email.return_value = None
        auth_db.create_user.return_value = user

        result = service.signup(SignupRequest(email="Jo@Example.com"), "203.0.113.9", "pytest")

        assert result == MagicLinkResult(sent=True, needs_signup=False)
        trial_end = auth_db.create_user.call_args.args[1]
        assert timedelta(days=13, hours=23) < trial_end - now_utc() <= timedelta(days=14)
        notifier.send_welcome.assert_called_once_with("jo@example.com", "Jo's Electrical", 14)
        assert email_client.send_magic_link.call_args.kwargs["app_url"] == "https://app.tradeflow.test"
        assert SecurityEvent.SIGNUP in _logged(security_logger)
        assert SecurityEvent.MAGIC_LINK_SENT in _logged(security_logger)

    def test_signup_is_rate_limited_per_ip(self, service, rate_limiter, auth_db, security_logger):
        rate_limiter.check.side_effect = RateLimitedError(600)

        with pytest.raises(RateLimitedError):
            service.signup(SignupRequest(email="jo@example.com"), "203.0.113.9", None)

        assert rate_limiter.check.call_args.args == (RateLimitScope.SIGNUP_IP, "203.0.113.9")
        assert _logged(security_logger) == [SecurityEvent.RATE_LIMITED]
        auth_db.create_user.assert_not_called()

    def test_duplicate_email(self, service, auth_db, security_logger, make_user):
        auth_db.get_user_by_email.return_value = make_user()

        with pytest.raises(AccountExistsError) as exc_info:
            service.signup(SignupRequest(email="testuser@example.com"), None, None)

        assert exc_info.value.field == "email"
        assert security_logger.log.call_args.kwargs["details"] == {"reason": "duplicate_email"}
        auth_db.create_user.assert_not_called()

    def test_duplicate_abn(self, service, auth_db, make_user):
        auth_db.get_user_by_email.return_value = None
        auth_db.get_user_by_abn.return_value = make_user()

        with pytest.raises(AccountExistsError, match="abn"):
            service.signup(SignupRequest(email="jo@example.com", abn="51824753556"), None, None)

    def test_concurrent_insert_collision(self, service, auth_db):
        auth_db.get_user_by_email.return_value = None
        auth_db.create_user.side_effect = pg_errors.UniqueViolation("users_email_key")

        with pytest.raises(AccountExistsError, match="email"):
            service.signup(SignupRequest(email="jo@example.com"), None, None)

    def test_welcome_failure_does_not_block(self, service, auth_db, notifier, email_client, make_user):
        auth_db.get_user_by_email.return_value = None
        auth_db.create_user.return_value = make_user()
        notifier.send_welcome.side_effect = EmailGatewayError("down")

        assert service.signup(SignupRequest(email="jo@example.com"), None, None).sent is True
        email_client.send_magic_link.assert_called_once()


class TestRequestMagicLink:

    def test_sends_link_to_existing_account(self, service, auth_db, email_client, rate_limiter, config, make_user):
        user = make_user()
        auth_db.get_user_by_email.return_value = user

        result = service.request_magic_link("TestUser@Example.com", "203.0.113.9", "pytest")

        assert result.sent is True
        scopes = [c.args[0] for c in rate_limiter.check.call_args_list]
        assert scopes == [RateLimitScope.LINK_REQUEST_IP, RateLimitScope.MAGIC_LINK_EMAIL]

        stored = auth_db.store_magic_link_token.call_args.args[0]
        assert stored.used is False
        assert stored.expires_at - stored.created_at == timedelta(minutes=config.magic_link_expiry_minutes)
        assert email_client.send_magic_link.call_args.kwargs["token"] == stored.token

    def test_unknown_email_needs_signup(self, service, auth_db, email_client, rate_limiter, security_logger):
        auth_db.get_user_by_email.return_value = None

        result = service.request_magic_link("new@example.com", "203.0.113.9", None)

        assert result == MagicLinkResult(sent=False, needs_signup=True)
        email_client.send_magic_link.assert_not_called()
        # Only the per-IP counter moves for unknown addresses
        assert rate_limiter.check.call_count == 1
        assert security_logger.log.call_args.kwargs["details"] == {"reason": "user_not_found"}

    def test_email_gateway_failure_propagates(self, service, auth_db, email_client, make_user):
        auth_db.get_user_by_email.return_value = make_user()
        email_client.send_magic_link.side_effect = EmailGatewayError("down")

        with pytest.raises(EmailGatewayError):
            service.request_magic_link("testuser@example.com", None, None)


class TestVerifyMagicLink:

    def test_valid_token_creates_session(self, service, auth_db, rate_limiter, security_logger, valkey, make_user):
        user = make_user()
        auth_db.get_magic_link_token.return_value = _token(user)
        auth_db.get_user_by_id.return_value = user

        result = service.verify_magic_link("tok", "203.0.113.9", "pytest")

        assert result.user.id == user.id
        assert f"session:{result.session.token}" in valkey.store
        auth_db.mark_token_used.assert_called_once_with("tok")
        auth_db.update_last_login.assert_called_once_with(user.id)
        rate_limiter.reset_rate_limit.assert_called_once_with(user.email)
        assert SecurityEvent.SESSION_CREATED in _logged(security_logger)

    def test_unknown_token(self, service, auth_db):
        auth_db.get_magic_link_token.return_value = None

        with pytest.raises(InvalidTokenError, match="Invalid or expired"):
            service.verify_magic_link("nope", None, None)

    def test_used_token(self, service, auth_db, security_logger, make_user):
        auth_db.get_magic_link_token.return_value = _token(make_user(), used=True)

        with pytest.raises(InvalidTokenError, match="already been used"):
            service.verify_magic_link("tok", None, None)

        assert _logged(security_logger) == [SecurityEvent.MAGIC_LINK_ALREADY_USED]
        auth_db.mark_token_used.assert_not_called()

    def test_expired_token(self, service, auth_db, make_user):
        auth_db.get_magic_link_token.return_value = _token(
            make_user(), expires_at=now_utc() - timedelta(seconds=1),
        )

        with pytest.raises(InvalidTokenError, match="expired"):
            service.verify_magic_link("tok", None, None)

    def test_inactive_account(self, service, auth_db, make_user):
        user = make_user(is_active=False)
        auth_db.get_magic_link_token.return_value = _token(user)
        auth_db.get_user_by_id.return_value = user

        with pytest.raises(UserInactiveError):
            service.verify_magic_link("tok", None, None)

        auth_db.mark_token_used.assert_not_called()


class TestSessions:

    def test_logout_revokes(self, service, sessions, security_logger, test_user_id):
        session = sessions.create_session(test_user_id)

        service.logout(session.token, "203.0.113.9")

        with pytest.raises(SessionExpiredError):
            service.validate_session(session.token)
        assert security_logger.log.call_args.kwargs["user_id"] == test_user_id

    def test_logout_unknown_token(self, service, security_logger):
        service.logout("never-issued", None)
        assert security_logger.log.call_args.kwargs["user_id"] is None


class TestProfile:

    def test_get_profile_missing(self, service, auth_db, test_user_id):
        auth_db.get_user_by_id.return_value = None

        with pytest.raises(ValueError, match="not found"):
            service.get_profile(test_user_id)

    def test_update_profile(self, service, auth_db, security_logger, make_user, test_user_id):
        auth_db.get_user_by_id.return_value = make_user()
        auth_db.update_profile.return_value = make_user(trade_type="electrician")

        updated = service.update_profile(test_user_id, ProfileUpdate(trade_type="electrician"))

        assert updated.trade_type == "electrician"
        auth_db.update_profile.assert_called_once_with(test_user_id, {"trade_type": "electrician"})
        assert security_logger.log.call_args.kwargs["details"] == {"fields": ["trade_type"]}

    def test_hours_checked_against_stored_values(self, service, auth_db, make_user, test_user_id):
        auth_db.get_user_by_id.return_value = make_user(working_hours_start=8)

        with pytest.raises(ValueError, match="working_hours_end must be after"):
            service.update_profile(test_user_id, ProfileUpdate(working_hours_end=7))

        auth_db.update_profile.assert_not_called()

    def test_abn_taken_by_other_account(self, service, auth_db, make_user, test_user_id, test_user_b_id):
        auth_db.get_user_by_id.return_value = make_user()
        auth_db.get_user_by_abn.return_value = make_user(id=test_user_b_id)

        with pytest.raises(AccountExistsError):
            service.update_profile(test_user_id, ProfileUpdate(abn="51824753556"))
