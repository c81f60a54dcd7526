"""
HashiCorp Vault client for TradeFlow secret management.

Uses AppRole authentication and fails fast on missing configuration.
All paths are scoped to the 'tradeflow/' prefix; nothing else is reachable.
"""

import os
import logging
from typing import Dict, Iterable

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "tradeflow"

# Singleton instance and per-process cache
_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


def _ensure_vault_client() -> "VaultClient":
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


class VaultError(Exception):
    """Vault operation failed. Fatal - the application cannot run without secrets."""


class VaultClient:
    """Vault client with AppRole auth, env-based config, and fail-fast behavior."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        """Initialize from environment variables. Fails fast on missing config."""
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        self.vault_role_id = os.getenv("VAULT_ROLE_ID")
        self.vault_secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise VaultError("VAULT_ADDR environment variable is required")

        if not self.vault_role_id or not self.vault_secret_id:
            raise VaultError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        client_kwargs = {"url": self.vault_addr}
        if self.vault_namespace:
            client_kwargs["namespace"] = self.vault_namespace

        self.client = hvac.Client(**client_kwargs)
        self._authenticate_approle()

        if not self.client.is_authenticated():
            raise VaultError("Vault authentication failed")

        logger.info(f"Vault client initialized: {self.vault_addr}")

    def _authenticate_approle(self) -> None:
        try:
            auth_response = self.client.auth.approle.login(
                role_id=self.vault_role_id,
                secret_id=self.vault_secret_id,
            )
            self.client.token = auth_response["auth"]["client_token"]
            logger.info("AppRole authentication successful")
        except Exception as e:
            logger.error(f"AppRole authentication failed: {e}")
            raise VaultError(f"AppRole authentication failed: {e}")

    def get_secret(self, path: str, field: str) -> str:
        """
        Retrieve a single field from a KV v2 secret.

        Caller passes 'stripe', we read 'tradeflow/stripe'.

        Raises:
            VaultError: Path missing or access denied.
            KeyError: Field not present in the secret.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath:
            logger.error(f"Secret path not found: {full_path}")
            raise VaultError(f"Secret path '{full_path}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Access denied to secret {full_path}: {e}")
            raise VaultError(f"Access denied to secret '{full_path}': {e}")

        secret_data = response["data"]["data"]
        if field not in secret_data:
            raise KeyError(
                f"Field '{field}' not found in secret '{full_path}'. "
                f"Available: {', '.join(secret_data.keys())}"
            )
        return secret_data[field]


def get_secret_fields(path: str, fields: Iterable[str]) -> Dict[str, str]:
    """Read several fields of one secret, going to Vault only for uncached ones."""
    result = {}
    client = None

    for field in fields:
        cache_key = f"{_SECRET_PREFIX}/{path}/{field}"
        if cache_key not in _secret_cache:
            if client is None:
                client = _ensure_vault_client()
            _secret_cache[cache_key] = client.get_secret(path, field)
        result[field] = _secret_cache[cache_key]

    return result


def get_database_url() -> str:
    """PostgreSQL connection URL."""
    return get_secret_fields("database", ["url"])["url"]


def get_valkey_url() -> str:
    """Valkey (Redis) connection URL."""
    return get_secret_fields("valkey", ["url"])["url"]


def get_email_config() -> Dict[str, str]:
    """Email gateway settings: gateway_url, api_key, hmac_secret."""
    return get_secret_fields("email", ["gateway_url", "api_key", "hmac_secret"])


def get_sms_config() -> Dict[str, str]:
    """Twilio settings: account_sid, auth_token, from_number."""
    return get_secret_fields("sms", ["account_sid", "auth_token", "from_number"])


def get_stripe_config() -> Dict[str, str]:
    """Stripe keys: secret_key, webhook_secret, publishable_key."""
    return get_secret_fields("stripe", ["secret_key", "webhook_secret", "publishable_key"])


def get_stripe_price_ids() -> Dict[str, str]:
    """
    Stripe price ids keyed '<tier>_<period>', e.g. 'professional_yearly'.

    Stored in Vault as fields price_<tier>_<period> of the stripe secret.
    """
    tiers = ("starter", "professional", "premium")
    periods = ("monthly", "yearly")
    fields = [f"price_{tier}_{period}" for tier in tiers for period in periods]
    raw = get_secret_fields("stripe", fields)
    return {field.removeprefix("price_"): value for field, value in raw.items()}
