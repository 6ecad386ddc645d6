"""Invoice delivery data models.

Settings snapshots live in ``invoice_delivery.models.settings`` (they depend on the default
message templates).
"""

from invoice_delivery.models.delivery import (
    DELIVER_INVOICE,
    ChannelOutcome,
    ChannelResult,
    DeliveryOutcome,
    DeliveryPayload,
)
from invoice_delivery.models.invoice import (
    ArtifactRecord,
    AttemptStatus,
    Channel,
    CompanyInfo,
    DispatchReceipt,
    Invoice,
    InvoiceCreate,
    LineItem,
    SendLogEntry,
    SendStatus,
    StorageKind,
    TriggerType,
)

__all__ = [
    "DELIVER_INVOICE",
    "ArtifactRecord",
    "AttemptStatus",
    "Channel",
    "ChannelOutcome",
    "ChannelResult",
    "CompanyInfo",
    "DeliveryOutcome",
    "DeliveryPayload",
    "DispatchReceipt",
    "Invoice",
    "InvoiceCreate",
    "LineItem",
    "SendLogEntry",
    "SendStatus",
    "StorageKind",
    "TriggerType",
]
