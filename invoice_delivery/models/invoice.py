"""Invoice, artifact and send-ledger data models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from invoice_delivery.utils.validators import validate_email, validate_invoice_number


class SendStatus(str, Enum):
    """Aggregate delivery status of an invoice."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class Channel(str, Enum):
    """Delivery medium."""

    EMAIL = "email"
    SMS = "sms"


class AttemptStatus(str, Enum):
    """Lifecycle of one send attempt in the ledger."""

    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class TriggerType(str, Enum):
    """What started a delivery."""

    AUTO = "auto"
    MANUAL = "manual"


class StorageKind(str, Enum):
    """Where an artifact's bytes live."""

    LOCAL = "local"
    REMOTE = "remote"


class LineItem(BaseModel):
    """Invoice line item model."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., ge=0)
    unit_price: Decimal = Field(..., ge=0)
    tax_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    total: Optional[Decimal] = Field(default=None, ge=0)

    @property
    def line_total(self) -> Decimal:
        """Persisted total if present, otherwise quantity x unit price."""
        if self.total is not None:
            return self.total
        return self.quantity * self.unit_price


class InvoiceBase(BaseModel):
    """Fields shared by invoice input and stored invoices."""

    invoice_number: str = Field(..., min_length=1, max_length=50)
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: Optional[str] = Field(default=None, max_length=200)
    customer_phone: Optional[str] = Field(default=None, max_length=32)
    items: List[LineItem] = Field(..., min_length=1)
    grand_total: Decimal = Field(..., ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    shipping: Decimal = Field(default=Decimal("0"), ge=0)
    balance_due: Optional[Decimal] = Field(default=None, ge=0)
    currency: str = Field(default="USD", max_length=3)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    payment_link: Optional[str] = Field(default=None, max_length=500)

    @field_validator("invoice_number")
    @classmethod
    def validate_invoice_number(cls, v: str) -> str:
        """Validate invoice number."""
        if not validate_invoice_number(v):
            raise ValueError("Invalid invoice number format")
        return v.strip()

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency code."""
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be a 3-letter ISO code")
        return v.upper()


class InvoiceCreate(InvoiceBase):
    """Invoice as submitted to the API layer."""

    @field_validator("customer_email")
    @classmethod
    def validate_customer_email(cls, v: Optional[str]) -> Optional[str]:
        """Validate customer email if provided."""
        if v is None or v.strip() == "":
            return None
        if not validate_email(v.strip()):
            raise ValueError("Invalid customer email address")
        return v.strip()


class Invoice(InvoiceBase):
    """Persisted invoice with delivery state."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    send_status: SendStatus = SendStatus.PENDING
    email_sent: bool = False
    email_sent_at: Optional[datetime] = None
    sms_sent: bool = False
    sms_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def amount_due(self) -> Decimal:
        """Balance due when set, otherwise the grand total."""
        return self.balance_due if self.balance_due is not None else self.grand_total


class CompanyInfo(BaseModel):
    """Issuer identity printed on documents and messages."""

    name: str = "Your Company"
    email: str = ""
    address: str = ""
    phone: str = ""


class ArtifactRecord(BaseModel):
    """A stored, rendered invoice document."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    invoice_id: int
    file_name: str
    file_path: str
    retrieval_url: Optional[str] = None
    file_size: int
    file_hash: str
    storage_type: StorageKind
    access_token: Optional[str] = None
    generated_at: Optional[datetime] = None


class SendLogEntry(BaseModel):
    """One delivery attempt for one invoice on one channel."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    invoice_id: int
    send_type: Channel
    recipient: Optional[str] = None
    status: AttemptStatus
    provider: Optional[str] = None
    provider_message_id: Optional[str] = None
    provider_response: Optional[Any] = None
    triggered_by: Optional[str] = None
    trigger_type: Optional[TriggerType] = None
    queued_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    created_at: Optional[datetime] = None


class DispatchReceipt(BaseModel):
    """Provider-neutral result of a successful send."""

    provider: str
    provider_message_id: Optional[str] = None
    raw_response: dict[str, Any] = Field(default_factory=dict)
