"""
SMS client for the Twilio Messages REST API.

Numbers are normalised to Australian E.164 before sending.
"""

import logging
import re

import requests

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class SmsGatewayError(Exception):
    """Raised when Twilio rejects or cannot receive a message."""


def format_australian_phone(phone: str) -> str:
    """
    Normalise an Australian number to E.164.

        0412 345 678   -> +61412345678
        61412345678    -> +61412345678
        +61 412 345 678 -> +61412345678
        412345678      -> +61412345678
    """
    digits = re.sub(r"\D", "", phone)
    if not digits:
        raise ValueError(f"Phone number has no digits: {phone!r}")

    if digits.startswith("0"):
        return f"+61{digits[1:]}"
    if digits.startswith("61"):
        return f"+{digits}"
    return f"+61{digits}"


class SmsClient:
    """
    Send text messages through Twilio.

    Usage:
        sms = SmsClient(account_sid, auth_token, from_number="+61400000000")
        sid = sms.send("0412 345 678", "Your quote is ready")
    """

    def __init__(self, account_sid: str, auth_token: str, from_number: str, timeout: int = 10):
        if not account_sid:
            raise ValueError("account_sid is required")
        if not auth_token:
            raise ValueError("auth_token is required")
        if not from_number:
            raise ValueError("from_number is required")

        self.account_sid = account_sid
        self._auth = (account_sid, auth_token)
        self.from_number = from_number
        self.timeout = timeout

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"

    def send(self, to: str, body: str) -> str:
        """
        Send one message.

        Returns:
            Twilio message SID

        Raises:
            ValueError: Number has no digits
            SmsGatewayError: Transport failure or Twilio error response
        """
        to_e164 = format_australian_phone(to)

        try:
            response = requests.post(
                self.messages_url,
                auth=self._auth,
                data={"To": to_e164, "From": self.from_number, "Body": body},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Twilio connection failed: {e}")
            raise SmsGatewayError(f"Connection failed: {e}")

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Twilio returned invalid JSON ({response.status_code})")
            raise SmsGatewayError("Invalid response from Twilio")

        if response.status_code not in (200, 201):
            code = data.get("code")
            message = data.get("message", "Unknown error")
            logger.error(f"Twilio API error [{code}]: {message}")
            raise SmsGatewayError(f"[{code}] {message}" if code else message)

        sid = data.get("sid")
        logger.info(f"SMS sent to {to_e164} (sid={sid})")
        return sid
