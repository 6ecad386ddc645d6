"""Abstract interface for channel dispatchers."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from invoice_delivery.models.invoice import Channel, CompanyInfo, DispatchReceipt, Invoice


class MessageContent(BaseModel):
    """Everything a dispatcher may put into a customer-facing message."""

    invoice: Invoice
    company: CompanyInfo
    invoice_link: str | None = None
    unsubscribe_link: str | None = None
    artifact: bytes | None = None
    artifact_file_name: str | None = None


class IChannelDispatcher(ABC):
    """Wraps exactly one upstream delivery capability for one channel.

    Instances are bound to one settings snapshot and handed to the orchestrator explicitly.
    """

    channel: Channel

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Name of the bound provider, recorded in the send ledger."""

    @abstractmethod
    def compose(self, recipient: str, content: MessageContent) -> Any:
        """
        Render the channel message for ``recipient``.

        :raises ValidationError: If the recipient address or number is malformed.
        """

    @abstractmethod
    async def send(self, message: Any) -> DispatchReceipt:
        """
        Transmit a composed message.

        :return: Provider-neutral receipt with the provider message id and raw response.
        :raises DispatchError: If the provider fails the send.
        """
