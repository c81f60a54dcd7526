"""
Email gateway client.

Every request body is signed with HMAC-SHA256 and sent with the API key;
the gateway delivers magic links, welcome mail, reminders and quotes.
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)

_SENDERS = ("auth", "system", "notifications")


class EmailGatewayError(Exception):
    """Raised when email gateway request fails."""


class EmailGatewayClient:
    """Send emails via HTTP gateway with HMAC signature verification."""

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout: int = 10):
        """
        Args:
            gateway_url: Full URL to the email gateway endpoint
            api_key: API key for X-API-Key header
            hmac_secret: Secret for HMAC-SHA256 signature

        Raises:
            ValueError: If any credential is empty
        """
        for name, value in (
            ("gateway_url", gateway_url),
            ("api_key", api_key),
            ("hmac_secret", hmac_secret),
        ):
            if not value:
                raise ValueError(f"{name} is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.timeout = timeout

    def sign(self, body: str) -> str:
        """Hex HMAC-SHA256 of the exact request body."""
        return hmac.new(
            self.hmac_secret.encode("utf-8"),
            body.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _post(self, payload: dict) -> None:
        """
        Sign and deliver one payload.

        Raises:
            EmailGatewayError: Transport failure, non-JSON reply, or rejected request
        """
        body = json.dumps(payload, separators=(",", ":"))
        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": self.sign(body),
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except ValueError:
            logger.error(f"Email gateway returned invalid JSON: {response.text}")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error ({response.status_code}): {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_magic_link(self, email: str, token: str, app_url: str) -> None:
        """
        Ask the gateway to render and send a sign-in link.

        Raises:
            EmailGatewayError: On any failure
        """
        self._post({"type": "magic_link", "email": email, "token": token, "app_url": app_url})
        logger.info(f"Magic link email sent to {email}")

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html: str | None = None,
        sender: str = "system",
        reply_to: str | None = None,
    ) -> None:
        """
        Send a rendered email.

        Args:
            to: Recipient address
            subject: Subject line
            body: Plain-text body (always sent)
            html: Optional HTML alternative
            sender: "auth", "system" or "notifications"
            reply_to: Where customer replies go, usually the tradie's address

        Raises:
            ValueError: Unknown sender
            EmailGatewayError: On gateway failure
        """
        if sender not in _SENDERS:
            raise ValueError(f"sender must be one of {', '.join(_SENDERS)}, got '{sender}'")

        payload = {
            "type": "custom",
            "email": to,
            "subject": subject,
            "body": body,
            "sender": sender,
        }
        if html is not None:
            payload["html"] = html
        if reply_to is not None:
            payload["reply_to"] = reply_to

        self._post(payload)
        logger.info(f"Email sent to {to}: {subject}")
