"""Per-job settings snapshot and customer preferences."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from invoice_delivery.delivery.templates import (
    DEFAULT_EMAIL_BODY_TEMPLATE,
    DEFAULT_EMAIL_SUBJECT_TEMPLATE,
    DEFAULT_SMS_TEMPLATE,
)
from invoice_delivery.models.invoice import CompanyInfo


class DeliverySettings(BaseModel):
    """Read-only snapshot of the invoice settings row, taken once per job."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    company_name: str = "Your Company"
    company_email: Optional[str] = None
    company_address: Optional[str] = None
    company_phone: Optional[str] = None

    email_enabled: bool = True
    email_provider: str = "sendgrid"
    email_from: Optional[str] = None
    email_from_name: Optional[str] = None
    email_reply_to: Optional[str] = None
    email_subject_template: Optional[str] = DEFAULT_EMAIL_SUBJECT_TEMPLATE
    email_body_template: Optional[str] = DEFAULT_EMAIL_BODY_TEMPLATE

    sms_enabled: bool = False
    sms_provider: str = "twilio"
    sms_from: Optional[str] = None
    sms_template: Optional[str] = DEFAULT_SMS_TEMPLATE

    auto_send_on_create: bool = True
    signed_url_expiry_days: int = Field(default=7, ge=1)

    @property
    def company(self) -> CompanyInfo:
        return CompanyInfo(
            name=self.company_name or "Your Company",
            email=self.company_email or self.email_from or "",
            address=self.company_address or "",
            phone=self.company_phone or "",
        )


class CustomerPreferences(BaseModel):
    """Consent state for one customer email address."""

    model_config = ConfigDict(from_attributes=True)

    customer_email: str
    email_unsubscribed: bool = False
    sms_opt_in: bool = False
    unsubscribe_token: Optional[str] = None
