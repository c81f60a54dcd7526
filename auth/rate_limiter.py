"""Rate limiting for auth endpoints.

Counters live in Valkey under ratelimit:{scope}:{identifier}. The window
slides: every attempt restarts the TTL, so hammering an endpoint keeps
extending the lockout.
"""

from enum import Enum

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import RateLimitedError


class RateLimitScope(str, Enum):
    """What a counter is keyed on."""

    MAGIC_LINK_EMAIL = "magic_link"
    LINK_REQUEST_IP = "link_request_ip"
    SIGNUP_IP = "signup_ip"


class RateLimiter:
    """Per-scope attempt counters in Valkey."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config
        self._window_seconds = config.rate_limit_window_minutes * 60

    def _key(self, scope: RateLimitScope, identifier: str) -> str:
        """Identifiers are lowercased so Bob@x.com and bob@x.com share a counter."""
        return f"{self.KEY_PREFIX}{scope.value}:{identifier.lower().strip()}"

    def check(self, scope: RateLimitScope, identifier: str | None) -> None:
        """
        Count an attempt and raise once the limit is passed.

        A missing identifier (client IP unknown) is not limited.

        Raises:
            RateLimitedError: With the seconds until the window expires.
        """
        if not identifier:
            return

        count, ttl = self._valkey.hit(self._key(scope, identifier), self._window_seconds)

        if count > self._config.rate_limit_attempts:
            raise RateLimitedError(retry_after_seconds=max(ttl, 1))

    def check_rate_limit(self, email: str) -> None:
        """Per-email limit on magic link requests."""
        self.check(RateLimitScope.MAGIC_LINK_EMAIL, email)

    def reset(self, scope: RateLimitScope, identifier: str | None) -> None:
        if identifier:
            self._valkey.delete(self._key(scope, identifier))

    def reset_rate_limit(self, email: str) -> None:
        """Clear the per-email counter after a successful login."""
        self.reset(RateLimitScope.MAGIC_LINK_EMAIL, email)

    def get_remaining_attempts(self, scope: RateLimitScope, identifier: str) -> int:
        current = self._valkey.get(self._key(scope, identifier))
        if current is None:
            return self._config.rate_limit_attempts
        return max(self._config.rate_limit_attempts - int(current), 0)
