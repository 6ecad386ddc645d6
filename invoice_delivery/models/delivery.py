"""Deliver-invoice job payload and outcome models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from invoice_delivery.models.invoice import Channel, Invoice, TriggerType

DELIVER_INVOICE = "deliver-invoice"


class DeliveryPayload(BaseModel):
    """Data carried by a deliver-invoice job."""

    invoice_id: int
    invoice: Optional[Invoice] = Field(default=None, description="Snapshot taken at enqueue time")
    artifact_content: Optional[bytes] = Field(
        default=None, description="Pre-rendered document; skips rendering when present"
    )
    artifact_file_name: Optional[str] = None
    triggered_by: str = "system"
    trigger_type: TriggerType = TriggerType.AUTO


class ChannelResult(str, Enum):
    """What happened on one channel during a job."""

    SENT = "sent"
    FAILED = "failed"
    DUPLICATE = "duplicate"


class ChannelOutcome(BaseModel):
    """Per-channel outcome reported back to the queue."""

    status: ChannelResult
    send_log_id: Optional[int] = None
    provider_message_id: Optional[str] = None
    error_kind: Optional[str] = None
    error_code: Optional[str] = None


class DeliveryOutcome(BaseModel):
    """Result of processing one deliver-invoice job."""

    invoice_id: int
    success: bool = True
    skipped: bool = False
    reason: Optional[str] = None
    file_name: Optional[str] = None
    artifact_hash: Optional[str] = None
    degraded: bool = False
    degraded_reason: Optional[str] = None
    channels: dict[Channel, ChannelOutcome] = Field(default_factory=dict)
