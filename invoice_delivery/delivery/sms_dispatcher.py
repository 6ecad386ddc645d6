"""SMS dispatcher: short invoice notice with the retrieval link."""

from invoice_delivery.config import Settings, settings
from invoice_delivery.core.errors import ConfigurationError
from invoice_delivery.delivery.abstractions import IChannelDispatcher, MessageContent
from invoice_delivery.delivery.templates import DEFAULT_SMS_TEMPLATE, build_template_context
from invoice_delivery.models.invoice import Channel, DispatchReceipt
from invoice_delivery.models.settings import DeliverySettings
from invoice_delivery.services.sms_service import (
    SmsMessage,
    SmsProvider,
    SmsTransport,
    create_sms_transport,
)
from invoice_delivery.utils.logger import logger
from invoice_delivery.utils.templating import Template
from invoice_delivery.utils.validators import normalize_phone_number


class SmsDispatcher(IChannelDispatcher):
    """Sends invoice notices by SMS. Numbers are normalized before any provider call."""

    channel = Channel.SMS

    def __init__(
        self,
        transport: SmsTransport,
        template: str | None = None,
        default_country_code: str = "1",
    ):
        self._transport = transport
        self._template = Template(template or DEFAULT_SMS_TEMPLATE)
        self.default_country_code = default_country_code

    @classmethod
    def initialize(cls, snapshot: DeliverySettings, config: Settings | None = None) -> "SmsDispatcher":
        """Bind the provider selected in ``snapshot`` to its credentials.

        Raises:
            ConfigurationError: If the provider is unknown or its credentials are missing.
        """
        config = config or settings
        try:
            provider = SmsProvider((snapshot.sms_provider or "").lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown SMS provider: {snapshot.sms_provider}", code="unknown_provider"
            ) from e

        transport = create_sms_transport(provider, config, from_number=snapshot.sms_from)
        logger.info(f"SMS dispatcher initialized with provider {provider.value}")
        return cls(
            transport,
            template=snapshot.sms_template,
            default_country_code=config.sms_default_country_code,
        )

    @property
    def provider_name(self) -> str:
        return self._transport.provider.value

    def compose(self, recipient: str, content: MessageContent) -> SmsMessage:
        to_phone = normalize_phone_number(recipient, self.default_country_code)
        context = build_template_context(
            content.invoice, content.company, invoice_link=content.invoice_link
        )
        body = " ".join(self._template.render(context).split())
        return SmsMessage(to_phone=to_phone, body=body)

    async def send(self, message: SmsMessage) -> DispatchReceipt:
        logger.info(f"Sending SMS to {message.to_phone} via {self.provider_name}")
        receipt = await self._transport.send(message)
        logger.info(f"SMS accepted by {self.provider_name}: {receipt.provider_message_id}")
        return receipt
