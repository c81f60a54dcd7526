"""Tests for EmailGatewayClient, with HTTP mocked by responses."""

import hashlib
import hmac
import json

import pytest
import requests
import responses

from clients.email_client import EmailGatewayClient, EmailGatewayError

GATEWAY_URL = "https://mail.tradeflow.test/send"


@pytest.fixture
def client():
    return EmailGatewayClient(
        gateway_url=GATEWAY_URL,
        api_key="key-123",
        hmac_secret="shh",
    )


def _sent_payload():
    return json.loads(responses.calls[0].request.body)


class TestInit:

    @pytest.mark.parametrize("missing", ["gateway_url", "api_key", "hmac_secret"])
    def test_each_credential_required(self, missing):
        kwargs = {"gateway_url": GATEWAY_URL, "api_key": "key-123", "hmac_secret": "shh"}
        kwargs[missing] = ""

        with pytest.raises(ValueError, match=missing):
            EmailGatewayClient(**kwargs)


class TestSigning:

    def test_sign_is_hmac_sha256_hex(self, client):
        expected = hmac.new(b"shh", b'{"a":1}', hashlib.sha256).hexdigest()
        assert client.sign('{"a":1}') == expected

    @responses.activate
    def test_request_carries_key_and_signature_of_body(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_magic_link(email="sam@example.com", token="tok", app_url="https://app.tradeflow.test")

        request = responses.calls[0].request
        body = request.body.decode() if isinstance(request.body, bytes) else request.body
        assert request.headers["X-API-Key"] == "key-123"
        assert request.headers["X-Signature"] == client.sign(body)
        # Compact separators, so the gateway can re-sign byte for byte
        assert ", " not in body and ": " not in body


class TestSendMagicLink:

    @responses.activate
    def test_payload(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        assert client.send_magic_link(
            email="sam@example.com", token="tok", app_url="https://app.tradeflow.test",
        ) is None

        assert _sent_payload() == {
            "type": "magic_link",
            "email": "sam@example.com",
            "token": "tok",
            "app_url": "https://app.tradeflow.test",
        }

    @responses.activate
    def test_server_error(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": False, "message": "Internal error"}, status=500)

        with pytest.raises(EmailGatewayError, match="Gateway error: Internal error"):
            client.send_magic_link(email="sam@example.com", token="tok", app_url="https://app.tradeflow.test")

    @responses.activate
    def test_rejected_with_200(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": False, "message": "Invalid email"}, status=200)

        with pytest.raises(EmailGatewayError, match="Invalid email"):
            client.send_magic_link(email="nope", token="tok", app_url="https://app.tradeflow.test")

    @responses.activate
    def test_connection_failure(self, client):
        responses.add(responses.POST, GATEWAY_URL, body=requests.exceptions.ConnectionError("unreachable"))

        with pytest.raises(EmailGatewayError, match="Connection failed"):
            client.send_magic_link(email="sam@example.com", token="tok", app_url="https://app.tradeflow.test")

    @responses.activate
    def test_non_json_reply(self, client):
        responses.add(responses.POST, GATEWAY_URL, body="<html>bad gateway</html>", status=200)

        with pytest.raises(EmailGatewayError, match="Invalid response from gateway"):
            client.send_magic_link(email="sam@example.com", token="tok", app_url="https://app.tradeflow.test")


class TestSendEmail:

    @responses.activate
    def test_plain_email_defaults_to_system_sender(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_email(to="sam@example.com", subject="Your quote", body="See attached")

        assert _sent_payload() == {
            "type": "custom",
            "email": "sam@example.com",
            "subject": "Your quote",
            "body": "See attached",
            "sender": "system",
        }

    @responses.activate
    def test_html_and_reply_to_included_when_given(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_email(
            to="sam@example.com",
            subject="Reminder",
            body="Tomorrow 9am",
            html="<p>Tomorrow 9am</p>",
            sender="notifications",
            reply_to="jobs@taylor.test",
        )

        payload = _sent_payload()
        assert payload["html"] == "<p>Tomorrow 9am</p>"
        assert payload["reply_to"] == "jobs@taylor.test"
        assert payload["sender"] == "notifications"

    @responses.activate
    def test_unknown_sender_makes_no_request(self, client):
        with pytest.raises(ValueError, match="sender must be one of auth, system, notifications"):
            client.send_email(to="sam@example.com", subject="x", body="y", sender="marketing")

        assert len(responses.calls) == 0

    @responses.activate
    def test_gateway_error(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": False}, status=500)

        with pytest.raises(EmailGatewayError, match="Unknown error"):
            client.send_email(to="sam@example.com", subject="x", body="y")
