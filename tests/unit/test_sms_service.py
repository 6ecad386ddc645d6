"""Unit tests for SMS transports."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from invoice_delivery.core.errors import ConfigurationError, DispatchError
from invoice_delivery.services.sms_service import (
    ApiSmsTransport,
    SmsMessage,
    SmsProvider,
    TwilioTransport,
    VonageTransport,
    create_sms_transport,
)

MESSAGE = SmsMessage(to_phone="+14155550100", body="Invoice INV-1001 is ready")


def _response(json_body) -> MagicMock:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = json_body
    return response


class TestTwilioTransport:
    """Test cases for TwilioTransport."""

    @patch("invoice_delivery.services.sms_service.httpx.AsyncClient")
    async def test_send_with_from_number(self, mock_client):
        post = AsyncMock(return_value=_response({"sid": "SM123", "status": "queued"}))
        mock_client.return_value.__aenter__.return_value.post = post

        transport = TwilioTransport(
            "AC123", "token", "https://twilio.test/2010-04-01/", timeout=5, from_number="+15005550006"
        )
        receipt = await transport.send(MESSAGE)

        assert receipt.provider == "twilio"
        assert receipt.provider_message_id == "SM123"
        assert post.call_args.args[0] == "https://twilio.test/2010-04-01/Accounts/AC123/Messages.json"
        assert post.call_args.kwargs["auth"] == ("AC123", "token")
        assert post.call_args.kwargs["data"] == {
            "To": "+14155550100",
            "Body": "Invoice INV-1001 is ready",
            "From": "+15005550006",
        }

    @patch("invoice_delivery.services.sms_service.httpx.AsyncClient")
    async def test_send_with_messaging_service(self, mock_client):
        post = AsyncMock(return_value=_response({"sid": "SM124"}))
        mock_client.return_value.__aenter__.return_value.post = post

        transport = TwilioTransport(
            "AC123", "token", "https://twilio.test", timeout=5, messaging_service_sid="MG1"
        )
        await transport.send(MESSAGE)

        data = post.call_args.kwargs["data"]
        assert data["MessagingServiceSid"] == "MG1"
        assert "From" not in data

    @patch("invoice_delivery.services.sms_service.httpx.AsyncClient")
    async def test_rejected(self, mock_client):
        """Test an error status carries the provider's message."""
        request = httpx.Request("POST", "https://twilio.test")
        rejected = httpx.Response(400, json={"message": "Invalid 'To' Phone Number"}, request=request)
        response = _response({})
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "400", request=request, response=rejected
        )
        mock_client.return_value.__aenter__.return_value.post = AsyncMock(return_value=response)

        transport = TwilioTransport("AC123", "token", "https://twilio.test", timeout=5, from_number="+1500")
        with pytest.raises(DispatchError, match="Invalid 'To' Phone Number") as exc_info:
            await transport.send(MESSAGE)
        assert exc_info.value.code == "http_400"

    @patch("invoice_delivery.services.sms_service.httpx.AsyncClient")
    async def test_timeout(self, mock_client):
        mock_client.return_value.__aenter__.return_value.post = AsyncMock(
            side_effect=httpx.ReadTimeout("timed out")
        )

        transport = TwilioTransport("AC123", "token", "https://twilio.test", timeout=5, from_number="+1500")
        with pytest.raises(DispatchError) as exc_info:
            await transport.send(MESSAGE)
        assert exc_info.value.code == "network"


class TestVonageTransport:
    @patch("invoice_delivery.services.sms_service.httpx.AsyncClient")
    async def test_send_success(self, mock_client):
        post = AsyncMock(
            return_value=_response({"message-count": "1", "messages": [{"status": "0", "message-id": "v-1"}]})
        )
        mock_client.return_value.__aenter__.return_value.post = post

        transport = VonageTransport("key", "secret", "Acme", "https://vonage.test/sms/json", timeout=5)
        receipt = await transport.send(MESSAGE)

        assert receipt.provider_message_id == "v-1"
        assert post.call_args.kwargs["data"]["to"] == "14155550100"

    @patch("invoice_delivery.services.sms_service.httpx.AsyncClient")
    async def test_non_zero_status(self, mock_client):
        """Test Vonage reports rejections inside a 200 response."""
        mock_client.return_value.__aenter__.return_value.post = AsyncMock(
            return_value=_response({"messages": [{"status": "4", "error-text": "Bad Credentials"}]})
        )

        transport = VonageTransport("key", "secret", "Acme", "https://vonage.test/sms/json", timeout=5)
        with pytest.raises(DispatchError, match="Bad Credentials") as exc_info:
            await transport.send(MESSAGE)
        assert exc_info.value.code == "vonage_4"


class TestApiSmsTransport:
    @patch("invoice_delivery.services.sms_service.httpx.AsyncClient")
    async def test_api_key_header(self, mock_client):
        post = AsyncMock(return_value=_response({"message_id": 77}))
        mock_client.return_value.__aenter__.return_value.post = post

        receipt = await ApiSmsTransport("https://sms.test/send", "key-1", "Invoices", timeout=5).send(MESSAGE)

        assert receipt.provider_message_id == "77"
        assert post.call_args.kwargs["headers"]["X-API-Key"] == "key-1"
        assert post.call_args.kwargs["json"] == {
            "to": "+14155550100",
            "message": "Invoice INV-1001 is ready",
            "sender": "Invoices",
        }

    @patch("invoice_delivery.services.sms_service.httpx.AsyncClient")
    async def test_bearer_token(self, mock_client):
        post = AsyncMock(return_value=_response({"id": "abc"}))
        mock_client.return_value.__aenter__.return_value.post = post

        await ApiSmsTransport("https://sms.test/send", "Bearer tok", "Invoices", timeout=5).send(MESSAGE)

        headers = post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tok"
        assert "X-API-Key" not in headers


class TestCreateSmsTransport:
    def test_twilio_sender_override(self, config):
        """Test the settings-row sender wins over the configured number."""
        transport = create_sms_transport(SmsProvider.TWILIO, config, from_number="+15550001111")
        assert isinstance(transport, TwilioTransport)
        assert transport.from_number == "+15550001111"

    def test_twilio_needs_sender(self, config):
        config = config.model_copy(update={"twilio_phone_number": None})
        with pytest.raises(ConfigurationError):
            create_sms_transport(SmsProvider.TWILIO, config)

    def test_vonage_missing_credentials(self, config):
        with pytest.raises(ConfigurationError):
            create_sms_transport(SmsProvider.VONAGE, config)

    def test_api_missing_url(self, config):
        with pytest.raises(ConfigurationError, match="SMS API URL"):
            create_sms_transport(SmsProvider.API, config)

    def test_api(self, config):
        config = config.model_copy(update={"sms_api_url": "https://sms.test", "sms_api_key": "k"})
        transport = create_sms_transport(SmsProvider.API, config)
        assert isinstance(transport, ApiSmsTransport)
        assert transport.sender_name == "Invoices"
