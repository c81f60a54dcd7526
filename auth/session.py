"""Session tokens stored in Valkey.

A session is a JSON blob under session:{token} whose TTL matches its
expiry. Every successful validation slides the expiry forward.
"""

import secrets
from datetime import timedelta
from uuid import UUID

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.types import Session
from auth.exceptions import SessionExpiredError
from utils.timezone import now_utc, parse_iso


class SessionManager:
    """Create, validate (and extend) and revoke sessions."""

    KEY_PREFIX = "session:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._ttl_seconds = config.session_expiry_hours * 3600

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token}"

    def _store(self, session: Session) -> None:
        self._valkey.set_json(
            self._key(session.token),
            {
                "user_id": str(session.user_id),
                "created_at": session.created_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
                "last_activity_at": session.last_activity_at.isoformat(),
            },
            expire_seconds=self._ttl_seconds,
        )

    def create_session(self, user_id: UUID) -> Session:
        """New session with a 256-bit URL-safe token."""
        now = now_utc()
        session = Session(
            token=secrets.token_urlsafe(32),
            user_id=user_id,
            created_at=now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
            last_activity_at=now,
        )
        self._store(session)
        return session

    def validate_session(self, token: str) -> Session:
        """
        Look up a session and slide its expiry.

        Raises:
            SessionExpiredError: Unknown token or past its expiry.
        """
        data = self._valkey.get_json(self._key(token))
        if data is None:
            raise SessionExpiredError("Session not found or expired")

        now = now_utc()
        expires_at = parse_iso(data["expires_at"])

        # Valkey TTL should already have removed it
        if now > expires_at:
            self._valkey.delete(self._key(token))
            raise SessionExpiredError("Session expired")

        session = Session(
            token=token,
            user_id=UUID(data["user_id"]),
            created_at=parse_iso(data["created_at"]),
            expires_at=now + timedelta(seconds=self._ttl_seconds),
            last_activity_at=now,
        )
        self._store(session)
        return session

    def revoke_session(self, token: str) -> None:
        """Logout. Safe to call with an unknown token."""
        self._valkey.delete(self._key(token))
