"""SMS transports: Twilio, Vonage and a generic HTTP API."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, assert_never

import httpx
from pydantic import BaseModel

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.errors import ConfigurationError, DispatchError
from invoice_delivery.models.invoice import DispatchReceipt
from invoice_delivery.utils.logger import logger


class SmsProvider(str, Enum):
    """Supported SMS providers."""

    TWILIO = "twilio"
    VONAGE = "vonage"
    API = "api"


class SmsMessage(BaseModel):
    """Rendered SMS; ``to_phone`` is already in E.164 form."""

    to_phone: str
    body: str


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


class SmsTransport(ABC):
    """One upstream SMS capability."""

    provider: SmsProvider

    def __init__(self, timeout: float):
        self.timeout = timeout

    @abstractmethod
    async def send(self, message: SmsMessage) -> DispatchReceipt:
        """Transmit ``message`` and return the provider's receipt.

        Raises:
            DispatchError: If the provider fails or rejects the message.
        """

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        logger.debug(f"Sending SMS request to {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            logger.error(f"{self.provider.value} rejected SMS: status {status}: {detail}")
            raise DispatchError(
                f"{self.provider.value} returned status {status}: {detail}", code=f"http_{status}"
            ) from e
        except httpx.RequestError as e:
            logger.error(f"{self.provider.value} request failed: {e}")
            raise DispatchError(f"{self.provider.value} request failed: {e}", code="network") from e


class TwilioTransport(SmsTransport):
    provider = SmsProvider.TWILIO

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        api_url: str,
        timeout: float,
        from_number: str | None = None,
        messaging_service_sid: str | None = None,
    ):
        super().__init__(timeout)
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.url = f"{api_url.rstrip('/')}/Accounts/{account_sid}/Messages.json"
        self.from_number = from_number
        self.messaging_service_sid = messaging_service_sid

    async def send(self, message: SmsMessage) -> DispatchReceipt:
        data = {"To": message.to_phone, "Body": message.body}
        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = self.from_number or ""

        response = await self._post(self.url, data=data, auth=(self.account_sid, self.auth_token))
        body = response.json()
        return DispatchReceipt(
            provider=self.provider.value,
            provider_message_id=body.get("sid"),
            raw_response=body,
        )


class VonageTransport(SmsTransport):
    provider = SmsProvider.VONAGE

    def __init__(self, api_key: str, api_secret: str, from_number: str, api_url: str, timeout: float):
        super().__init__(timeout)
        self.api_key = api_key
        self.api_secret = api_secret
        self.from_number = from_number
        self.url = api_url

    async def send(self, message: SmsMessage) -> DispatchReceipt:
        payload = {
            "api_key": self.api_key,
            "api_secret": self.api_secret,
            "from": self.from_number,
            # Vonage expects the number without the leading +
            "to": message.to_phone.lstrip("+"),
            "text": message.body,
        }
        response = await self._post(self.url, data=payload)
        body = response.json()
        messages = body.get("messages") or [{}]
        first = messages[0]
        if str(first.get("status", "0")) != "0":
            error_text = first.get("error-text") or "unknown error"
            logger.error(f"Vonage rejected SMS: status {first.get('status')}: {error_text}")
            raise DispatchError(
                f"Vonage rejected SMS: {error_text}", code=f"vonage_{first.get('status')}"
            )
        return DispatchReceipt(
            provider=self.provider.value,
            provider_message_id=first.get("message-id"),
            raw_response=body,
        )


class ApiSmsTransport(SmsTransport):
    """Generic JSON gateway authenticated with an API key header."""

    provider = SmsProvider.API

    def __init__(self, api_url: str, api_key: str, sender_name: str, timeout: float):
        super().__init__(timeout)
        self.api_url = api_url
        self.api_key = api_key
        self.sender_name = sender_name

    def _headers(self) -> dict[str, str]:
        if self.api_key.lower().startswith("bearer "):
            return {"Authorization": self.api_key, "Content-Type": "application/json"}
        return {"X-API-Key": self.api_key, "Content-Type": "application/json"}

    async def send(self, message: SmsMessage) -> DispatchReceipt:
        payload = {"to": message.to_phone, "message": message.body, "sender": self.sender_name}
        response = await self._post(self.api_url, json=payload, headers=self._headers())
        try:
            body = response.json()
        except ValueError:
            body = {"text": response.text[:500]}
        if not isinstance(body, dict):
            body = {"response": body}
        message_id = body.get("id") or body.get("message_id")
        return DispatchReceipt(
            provider=self.provider.value,
            provider_message_id=str(message_id) if message_id is not None else None,
            raw_response=body,
        )


def create_sms_transport(
    provider: SmsProvider, config: Settings | None = None, from_number: str | None = None
) -> SmsTransport:
    """Bind ``provider`` to its credentials; ``from_number`` overrides the configured sender.

    Raises:
        ConfigurationError: If the provider's credentials are not configured.
    """
    config = config or settings
    timeout = config.provider_timeout_seconds
    match provider:
        case SmsProvider.TWILIO:
            if not config.twilio_account_sid or not config.twilio_auth_token:
                raise ConfigurationError(
                    "Twilio selected but TWILIO_ACCOUNT_SID or TWILIO_AUTH_TOKEN is not set"
                )
            sender = from_number or config.twilio_phone_number
            if not sender and not config.twilio_messaging_service_sid:
                raise ConfigurationError(
                    "Twilio needs TWILIO_PHONE_NUMBER or TWILIO_MESSAGING_SERVICE_SID"
                )
            return TwilioTransport(
                config.twilio_account_sid,
                config.twilio_auth_token,
                config.twilio_api_url,
                timeout,
                from_number=sender,
                messaging_service_sid=config.twilio_messaging_service_sid,
            )
        case SmsProvider.VONAGE:
            sender = from_number or config.vonage_phone_number
            if not config.vonage_api_key or not config.vonage_api_secret or not sender:
                raise ConfigurationError(
                    "Vonage selected but VONAGE_API_KEY, VONAGE_API_SECRET or VONAGE_PHONE_NUMBER is not set"
                )
            return VonageTransport(
                config.vonage_api_key, config.vonage_api_secret, sender, config.vonage_api_url, timeout
            )
        case SmsProvider.API:
            if not config.sms_api_url:
                raise ConfigurationError("SMS API URL not configured")
            if not config.sms_api_key:
                raise ConfigurationError("SMS API key not configured")
            return ApiSmsTransport(
                config.sms_api_url, config.sms_api_key, from_number or config.sms_sender_name, timeout
            )
        case _:
            assert_never(provider)
