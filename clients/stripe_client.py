"""
Stripe REST client and webhook signature verification.

Talks to api.stripe.com directly with requests: form-encoded bodies,
basic auth with the secret key, bracketed keys for nested params
(metadata[user_id], items[0][price]). Only the handful of calls the
payments and subscription services make are wrapped.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, List, Tuple

import requests

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"

# Reject webhooks whose timestamp is further than this from now
WEBHOOK_TOLERANCE_SECONDS = 300


class PaymentGatewayError(Exception):
    """Stripe rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class WebhookSignatureError(Exception):
    """Stripe-Signature header missing, malformed, stale, or wrong."""


def encode_form(params: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """
    Flatten nested params into Stripe's bracketed form encoding.

        {"metadata": {"user_id": "u1"}, "items": [{"price": "p"}]}
        -> [("metadata[user_id]", "u1"), ("items[0][price]", "p")]

    None values are dropped; booleans become "true"/"false".
    """
    pairs: List[Tuple[str, str]] = []

    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, item_name))
                else:
                    pairs.append((item_name, str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))

    return pairs


def verify_webhook_signature(
    payload: bytes,
    signature_header: str | None,
    secret: str,
    tolerance_seconds: int = WEBHOOK_TOLERANCE_SECONDS,
    now: int | None = None,
) -> Dict[str, Any]:
    """
    Verify a Stripe webhook and return the parsed event.

    The header looks like "t=1700000000,v1=abc...,v1=def...". The expected
    signature is hex HMAC-SHA256 over "{t}.{raw body}" with the endpoint
    secret; any v1 entry may match.

    Raises:
        WebhookSignatureError: On any verification failure or unparseable body
    """
    if not signature_header:
        raise WebhookSignatureError("Missing Stripe-Signature header")

    timestamp = None
    signatures = []
    for part in signature_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise WebhookSignatureError("Malformed Stripe-Signature header")

    try:
        timestamp_int = int(timestamp)
    except ValueError:
        raise WebhookSignatureError("Invalid timestamp in Stripe-Signature header")

    current = int(time.time()) if now is None else now
    if abs(current - timestamp_int) > tolerance_seconds:
        logger.warning(f"Stripe webhook timestamp outside tolerance: {timestamp_int}")
        raise WebhookSignatureError("Webhook timestamp outside tolerance")

    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    expected = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()

    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        logger.warning("Stripe webhook signature mismatch")
        raise WebhookSignatureError("Signature mismatch")

    try:
        return json.loads(payload)
    except ValueError:
        raise WebhookSignatureError("Webhook body is not valid JSON")


def sign_webhook_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for a payload. Used by tests and local tooling."""
    ts = int(time.time()) if timestamp is None else timestamp
    signature = hmac.new(
        secret.encode("utf-8"), f"{ts}.".encode("utf-8") + payload, hashlib.sha256
    ).hexdigest()
    return f"t={ts},v1={signature}"


class StripeClient:
    """
    Minimal Stripe API client.

    Usage:
        stripe = StripeClient(secret_key)
        intent = stripe.create_payment_intent(5500, metadata={"user_id": str(uid)})
        intent["client_secret"]
    """

    def __init__(self, secret_key: str, timeout: int = 15):
        if not secret_key:
            raise ValueError("secret_key is required")
        self._auth = (secret_key, "")
        self.timeout = timeout

    def _request(self, method: str, path: str, params: Dict[str, Any] | None = None) -> Dict[str, Any]:
        """
        Call the Stripe API and return the decoded object.

        Raises:
            PaymentGatewayError: Transport failure or Stripe error object
        """
        url = f"{STRIPE_API_BASE}/{path}"
        data = encode_form(params) if params else None

        try:
            response = requests.request(
                method,
                url,
                auth=self._auth,
                data=data if method != "GET" else None,
                params=data if method == "GET" else None,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Stripe connection failed: {e}")
            raise PaymentGatewayError(f"Connection failed: {e}")

        try:
            body = response.json()
        except ValueError:
            logger.error(f"Stripe returned invalid JSON ({response.status_code})")
            raise PaymentGatewayError("Invalid response from Stripe", response.status_code)

        if response.status_code >= 400:
            error = body.get("error", {})
            message = error.get("message", "Unknown error")
            logger.error(f"Stripe API error {response.status_code} on {method} /{path}: {message}")
            raise PaymentGatewayError(message, response.status_code, error.get("code"))

        return body

    def create_customer(
        self,
        email: str,
        name: str | None = None,
        phone: str | None = None,
        metadata: Dict[str, str] | None = None,
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            "customers",
            {"email": email, "name": name, "phone": phone, "metadata": metadata},
        )

    def create_payment_intent(
        self,
        amount_cents: int,
        currency: str = "aud",
        description: str | None = None,
        metadata: Dict[str, str] | None = None,
        customer_id: str | None = None,
    ) -> Dict[str, Any]:
        """One-off charge with automatic payment methods."""
        return self._request(
            "POST",
            "payment_intents",
            {
                "amount": amount_cents,
                "currency": currency.lower(),
                "customer": customer_id,
                "description": description,
                "metadata": metadata,
                "automatic_payment_methods": {"enabled": True},
            },
        )

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_days: int | None = None,
        metadata: Dict[str, str] | None = None,
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            "subscriptions",
            {
                "customer": customer_id,
                "items": [{"price": price_id}],
                "trial_period_days": trial_days,
                "metadata": metadata,
                "payment_behavior": "default_incomplete",
                "payment_settings": {"save_default_payment_method": "on_subscription"},
                "expand": ["latest_invoice.payment_intent"],
            },
        )

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._request("GET", f"subscriptions/{subscription_id}")

    def change_subscription_price(self, subscription_id: str, price_id: str) -> Dict[str, Any]:
        """Swap the subscription's single item to a new price, prorated."""
        subscription = self.retrieve_subscription(subscription_id)
        item_id = subscription["items"]["data"][0]["id"]
        return self._request(
            "POST",
            f"subscriptions/{subscription_id}",
            {
                "items": [{"id": item_id, "price": price_id}],
                "proration_behavior": "create_prorations",
            },
        )

    def cancel_subscription(self, subscription_id: str, immediately: bool = False) -> Dict[str, Any]:
        """Cancel now, or flag it to end with the current period."""
        if immediately:
            return self._request("DELETE", f"subscriptions/{subscription_id}")
        return self._request(
            "POST",
            f"subscriptions/{subscription_id}",
            {"cancel_at_period_end": True},
        )
