"""Database operations for accounts and authentication.

Uses the non-RLS tables users and magic_link_tokens. They are read during
auth before a user context exists, by the Stripe webhook (which finds the
account by its Stripe customer id), and by the reminder worker.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from clients.postgres_client import PostgresClient
from auth.types import User, MagicLinkToken, SignupRequest
from core.models.subscription import SubscriptionStatus, SubscriptionTier
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_PROFILE_COLUMNS = {
    "business_name", "phone", "trade_type", "abn", "address", "city", "state",
    "postcode", "timezone", "working_hours_start", "working_hours_end",
    "working_days", "email_notifications", "sms_notifications",
}


class AuthDatabase:
    """Account and magic-link persistence."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def _one(self, query: str, params: tuple) -> User | None:
        row = self._db.execute_single(query, params)
        return User.model_validate(row) if row else None

    def get_user_by_email(self, email: str) -> User | None:
        """Find user by email (case-insensitive)."""
        return self._one("SELECT * FROM users WHERE email = lower(%s)", (email.strip(),))

    def get_user_by_id(self, user_id: UUID) -> User | None:
        return self._one("SELECT * FROM users WHERE id = %s", (str(user_id),))

    def get_user_by_abn(self, abn: str) -> User | None:
        return self._one("SELECT * FROM users WHERE abn = %s", (abn,))

    def get_user_by_stripe_customer(self, stripe_customer_id: str) -> User | None:
        return self._one(
            "SELECT * FROM users WHERE stripe_customer_id = %s",
            (stripe_customer_id,),
        )

    def create_user(self, signup: SignupRequest, trial_ends_at: datetime) -> User:
        """Insert a new account on trial. Email is stored lowercased."""
        rows = self._db.execute_returning(
            """INSERT INTO users
               (email, business_name, phone, trade_type, abn,
                subscription_tier, subscription_status, trial_ends_at)
               VALUES (lower(%s), %s, %s, %s, %s, %s, %s, %s)
               RETURNING *""",
            (
                signup.email.strip(),
                signup.business_name,
                signup.phone,
                signup.trade_type,
                signup.abn,
                SubscriptionTier.STARTER.value,
                SubscriptionStatus.TRIAL.value,
                trial_ends_at,
            ),
        )
        return User.model_validate(rows[0])

    def update_profile(self, user_id: UUID, fields: dict[str, Any]) -> User | None:
        """
        Update profile columns. Unknown keys are ignored with a warning.

        Returns:
            Updated user, or None if the account doesn't exist.
        """
        updates = {k: v for k, v in fields.items() if k in _PROFILE_COLUMNS}
        ignored = set(fields) - set(updates)
        if ignored:
            logger.warning(f"Ignoring non-profile fields on update: {sorted(ignored)}")

        if not updates:
            return self.get_user_by_id(user_id)

        set_clauses = [f"{column} = %s" for column in updates]
        set_clauses.append("updated_at = %s")
        params = list(updates.values()) + [now_utc(), str(user_id)]

        rows = self._db.execute_returning(
            f"UPDATE users SET {', '.join(set_clauses)} WHERE id = %s RETURNING *",
            tuple(params),
        )
        return User.model_validate(rows[0]) if rows else None

    def update_subscription(self, user_id: UUID, **fields: Any) -> User | None:
        """
        Update subscription columns (tier, status, stripe ids, end dates).

        Enum values are stored by value.
        """
        allowed = {
            "subscription_tier", "subscription_status", "subscription_ends_at",
            "stripe_customer_id", "stripe_subscription_id",
        }
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Not subscription fields: {sorted(unknown)}")
        if not fields:
            return self.get_user_by_id(user_id)

        values = [v.value if hasattr(v, "value") else v for v in fields.values()]
        set_clauses = [f"{column} = %s" for column in fields] + ["updated_at = %s"]

        rows = self._db.execute_returning(
            f"UPDATE users SET {', '.join(set_clauses)} WHERE id = %s RETURNING *",
            tuple(values + [now_utc(), str(user_id)]),
        )
        return User.model_validate(rows[0]) if rows else None

    def list_active_user_ids(self) -> list[UUID]:
        """Every active account, for background jobs that walk accounts."""
        rows = self._db.execute("SELECT id FROM users WHERE is_active = true ORDER BY created_at")
        return [row["id"] if isinstance(row["id"], UUID) else UUID(row["id"]) for row in rows]

    def update_last_login(self, user_id: UUID) -> None:
        self._db.execute_returning(
            "UPDATE users SET last_login_at = %s WHERE id = %s RETURNING id",
            (now_utc(), str(user_id)),
        )

    def store_magic_link_token(self, token: MagicLinkToken) -> None:
        self._db.execute_returning(
            """INSERT INTO magic_link_tokens (token, user_id, email, created_at, expires_at, used)
               VALUES (%s, %s, %s, %s, %s, %s)
               RETURNING token""",
            (
                token.token,
                str(token.user_id),
                token.email,
                token.created_at,
                token.expires_at,
                token.used,
            ),
        )

    def get_magic_link_token(self, token: str) -> MagicLinkToken | None:
        row = self._db.execute_single(
            """SELECT token, user_id, email, created_at, expires_at, used
               FROM magic_link_tokens
               WHERE token = %s""",
            (token,),
        )
        if row is None:
            return None
        return MagicLinkToken.model_validate(row)

    def mark_token_used(self, token: str) -> None:
        self._db.execute_returning(
            """UPDATE magic_link_tokens
               SET used = true, used_at = %s
               WHERE token = %s
               RETURNING token""",
            (now_utc(), token),
        )

    def cleanup_expired_tokens(self) -> int:
        """Delete expired tokens. Returns count deleted."""
        rows = self._db.execute_returning(
            "DELETE FROM magic_link_tokens WHERE expires_at < %s RETURNING token",
            (now_utc(),),
        )
        return len(rows)
