"""Authentication service - signup, magic link login, sessions and profile."""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from psycopg2 import errors as pg_errors

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.session import SessionManager
from auth.rate_limiter import RateLimiter, RateLimitScope
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.types import AuthenticatedUser, MagicLinkToken, ProfileUpdate, Session, SignupRequest, User
from auth.exceptions import (
    AccountExistsError,
    InvalidTokenError,
    RateLimitedError,
    SessionExpiredError,
    UserInactiveError,
)
from clients.email_client import EmailGatewayClient, EmailGatewayError
from core.notifications import Notifier
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


@dataclass
class MagicLinkResult:
    """Result of magic link request."""

    sent: bool
    needs_signup: bool


class AuthService:
    """Orchestrates account signup and magic link authentication.

    Handles:
    - Signup on a free trial (duplicate email/ABN rejected)
    - Magic link requests (per-IP and per-email rate limits)
    - Token verification and session creation
    - Logout
    - Profile read and update
    """

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        session_manager: SessionManager,
        rate_limiter: RateLimiter,
        email_client: EmailGatewayClient,
        security_logger: SecurityLogger,
        notifier: Notifier | None = None,
        trial_days: int = 14,
    ):
        self._config = config
        self._auth_db = auth_db
        self._session_manager = session_manager
        self._rate_limiter = rate_limiter
        self._email_client = email_client
        self._security_logger = security_logger
        self._notifier = notifier
        self._trial_days = trial_days

    def _limit(
        self,
        scope: RateLimitScope,
        identifier: str | None,
        ip_address: str | None,
        email: str | None = None,
    ) -> None:
        """Count an attempt, logging before re-raising when the limit is hit."""
        try:
            self._rate_limiter.check(scope, identifier)
        except RateLimitedError:
            self._security_logger.log(
                SecurityEvent.RATE_LIMITED,
                email=email,
                ip_address=ip_address,
                details={"scope": scope.value},
            )
            raise

    def signup(
        self,
        request: SignupRequest,
        ip_address: str | None,
        user_agent: str | None,
    ) -> MagicLinkResult:
        """Create an account on a free trial and send its first magic link.

        A failed welcome email is logged and does not stop signup; a failed
        magic link email propagates.

        Raises:
            RateLimitedError: Too many signups from this IP.
            AccountExistsError: Email or ABN already registered.
            EmailGatewayError: Magic link email could not be sent.
        """
        email = request.email.lower().strip()
        self._limit(RateLimitScope.SIGNUP_IP, ip_address, ip_address, email)

        if self._auth_db.get_user_by_email(email) is not None:
            self._reject_signup(email, "email", ip_address, user_agent)
        if request.abn and self._auth_db.get_user_by_abn(request.abn) is not None:
            self._reject_signup(email, "abn", ip_address, user_agent)

        trial_ends_at = now_utc() + timedelta(days=self._trial_days)
        try:
            user = self._auth_db.create_user(request, trial_ends_at)
        except pg_errors.UniqueViolation:
            # Concurrent signup won the insert
            self._reject_signup(email, "email", ip_address, user_agent)

        self._security_logger.log(
            SecurityEvent.SIGNUP,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"trial_ends_at": trial_ends_at.isoformat()},
        )

        if self._notifier is not None:
            try:
                self._notifier.send_welcome(user.email, user.business_name, self._trial_days)
            except EmailGatewayError as e:
                logger.error(f"Welcome email to account {user.id} failed: {e}")

        self._send_link(user, ip_address, user_agent)
        return MagicLinkResult(sent=True, needs_signup=False)

    def _reject_signup(self, email: str, field: str, ip_address: str | None, user_agent: str | None) -> None:
        self._security_logger.log(
            SecurityEvent.SIGNUP_REJECTED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"reason": f"duplicate_{field}"},
        )
        raise AccountExistsError(field)

    def request_magic_link(
        self,
        email: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> MagicLinkResult:
        """Request magic link for email.

        Flow:
        1. Per-IP limit (every request counts, so probing for accounts is capped)
        2. Look up user; unknown email returns needs_signup
        3. Per-email limit
        4. Generate, store and send the token

        Returns:
            MagicLinkResult with sent=True if email sent, needs_signup=True if user doesn't exist.

        Raises:
            RateLimitedError: If either limit is exceeded.
            EmailGatewayError: If email send fails.
        """
        email = email.lower().strip()

        self._limit(RateLimitScope.LINK_REQUEST_IP, ip_address, ip_address, email)

        user = self._auth_db.get_user_by_email(email)

        if user is None:
            self._security_logger.log(
                SecurityEvent.MAGIC_LINK_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "user_not_found"},
            )
            return MagicLinkResult(sent=False, needs_signup=True)

        self._limit(RateLimitScope.MAGIC_LINK_EMAIL, email, ip_address, email)

        self._send_link(user, ip_address, user_agent)
        return MagicLinkResult(sent=True, needs_signup=False)

    def _send_link(self, user: User, ip_address: str | None, user_agent: str | None) -> None:
        now = now_utc()
        token_value = secrets.token_urlsafe(32)
        token = MagicLinkToken(
            token=token_value,
            user_id=user.id,
            email=user.email,
            created_at=now,
            expires_at=now + timedelta(minutes=self._config.magic_link_expiry_minutes),
            used=False,
        )

        self._auth_db.store_magic_link_token(token)

        self._security_logger.log(
            SecurityEvent.MAGIC_LINK_REQUESTED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        # May raise EmailGatewayError
        self._email_client.send_magic_link(
            email=user.email,
            token=token_value,
            app_url=self._config.app_base_url,
        )

        self._security_logger.log(
            SecurityEvent.MAGIC_LINK_SENT,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )

    def verify_magic_link(
        self,
        token: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthenticatedUser:
        """Verify magic link token and create session.

        Raises:
            InvalidTokenError: If token invalid, expired, or already used.
            UserInactiveError: If user account is deactivated.
        """
        magic_token = self._auth_db.get_magic_link_token(token)

        if magic_token is None:
            self._security_logger.log(
                SecurityEvent.MAGIC_LINK_FAILED,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "token_not_found"},
            )
            raise InvalidTokenError("Invalid or expired token")

        if magic_token.used:
            self._security_logger.log(
                SecurityEvent.MAGIC_LINK_ALREADY_USED,
                email=magic_token.email,
                user_id=magic_token.user_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise InvalidTokenError("Token has already been used")

        if now_utc() > magic_token.expires_at:
            self._security_logger.log(
                SecurityEvent.MAGIC_LINK_EXPIRED,
                email=magic_token.email,
                user_id=magic_token.user_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise InvalidTokenError("Token has expired")

        user = self._auth_db.get_user_by_id(magic_token.user_id)
        if user is None:
            raise InvalidTokenError("Invalid or expired token")

        if not user.is_active:
            self._security_logger.log(
                SecurityEvent.MAGIC_LINK_FAILED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "user_inactive"},
            )
            raise UserInactiveError("User account is deactivated")

        self._auth_db.mark_token_used(token)
        session = self._session_manager.create_session(user.id)
        self._auth_db.update_last_login(user.id)
        self._rate_limiter.reset_rate_limit(user.email)

        self._security_logger.log(
            SecurityEvent.MAGIC_LINK_VERIFIED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self._security_logger.log(
            SecurityEvent.SESSION_CREATED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        # Refresh to pick up last_login_at
        user = self._auth_db.get_user_by_id(user.id) or user

        return AuthenticatedUser(user=user, session=session)

    def logout(self, session_token: str, ip_address: str | None) -> None:
        """Revoke session (logout). Safe to call with an invalid token."""
        user_id = None
        try:
            user_id = self._session_manager.validate_session(session_token).user_id
        except SessionExpiredError:
            pass

        self._session_manager.revoke_session(session_token)

        self._security_logger.log(
            SecurityEvent.SESSION_REVOKED,
            user_id=user_id,
            ip_address=ip_address,
        )

    def validate_session(self, token: str) -> Session:
        """Validate session token.

        Raises:
            SessionExpiredError: If session invalid or expired.
        """
        return self._session_manager.validate_session(token)

    def get_profile(self, user_id: UUID) -> User:
        """
        Raises:
            ValueError: Account not found
        """
        user = self._auth_db.get_user_by_id(user_id)
        if user is None:
            raise ValueError(f"Account {user_id} not found")
        return user

    def update_profile(self, user_id: UUID, update: ProfileUpdate, ip_address: str | None = None) -> User:
        """Apply a profile update.

        Working hours are checked against the stored values when only one
        end of the range is given.

        Raises:
            ValueError: Account not found, or hours out of order
            AccountExistsError: ABN belongs to another account
        """
        current = self.get_profile(user_id)
        fields = update.model_dump(exclude_none=True)

        start = fields.get("working_hours_start", current.working_hours_start)
        end = fields.get("working_hours_end", current.working_hours_end)
        if end <= start:
            raise ValueError("working_hours_end must be after working_hours_start")

        if "abn" in fields and fields["abn"] != current.abn:
            other = self._auth_db.get_user_by_abn(fields["abn"])
            if other is not None and other.id != user_id:
                raise AccountExistsError("abn")

        updated = self._auth_db.update_profile(user_id, fields)
        if updated is None:
            raise ValueError(f"Account {user_id} not found")

        self._security_logger.log(
            SecurityEvent.PROFILE_UPDATED,
            email=updated.email,
            user_id=user_id,
            ip_address=ip_address,
            details={"fields": sorted(fields)},
        )

        return updated
