"""
Valkey (Redis-compatible) client for sessions and rate limiting.

Thin wrapper around redis-py; the URL comes from Vault. Raises on
connection failure rather than returning fallback values.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        valkey = ValkeyClient("redis://localhost:6379/0")
        valkey.set_json("session:abc", {"user_id": "..."}, expire_seconds=3600)
        count, ttl = valkey.hit("ratelimit:signup:203.0.113.9", window_seconds=900)
    """

    def __init__(self, url: str):
        """
        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """Health check. Raises redis.ConnectionError if unreachable."""
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        """Value for key, or None when missing."""
        return self._client.get(key)

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        if expire_seconds is not None:
            self._client.setex(key, expire_seconds, value)
        else:
            self._client.set(key, value)

    def delete(self, key: str) -> bool:
        """True if the key existed."""
        return self._client.delete(key) > 0

    def ttl(self, key: str) -> int:
        """
        Remaining TTL in seconds.

        Returns:
            -2 if key doesn't exist
            -1 if key has no expiration
            Positive int: remaining seconds
        """
        return self._client.ttl(key)

    def incr(self, key: str) -> int:
        return self._client.incr(key)

    def expire(self, key: str, seconds: int) -> bool:
        """Set (or reset) a key's TTL. False if the key doesn't exist."""
        return bool(self._client.expire(key, seconds))

    def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        """
        Count one attempt against a key and restart its window.

        INCR and EXPIRE go out in one MULTI/EXEC pipeline so a counter is
        never left behind without a TTL.

        Returns:
            (attempt count including this one, remaining TTL in seconds)
        """
        pipe = self._client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, window_seconds)
        pipe.ttl(key)
        count, _, ttl = pipe.execute()
        return int(count), int(ttl)

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        self.set(key, json.dumps(value), expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """
        Get and deserialize a JSON value.

        Returns None if key doesn't exist.
        Raises ValueError if value is not valid JSON.
        """
        value = self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def close(self) -> None:
        self._client.close()
        logger.info("ValkeyClient closed")
