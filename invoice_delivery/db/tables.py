"""Relational tables for invoices, settings, artifacts and the send ledger."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)

from invoice_delivery.db.database import Base, utcnow


class InvoiceRow(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String(50), nullable=False, unique=True, index=True)
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(200), nullable=True)
    customer_phone = Column(String(32), nullable=True)
    grand_total = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    shipping = Column(Numeric(12, 2), nullable=False, default=0)
    balance_due = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    invoice_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)
    items = Column(JSON, nullable=False, default=list)
    payment_link = Column(String(500), nullable=True)
    send_status = Column(String(16), nullable=False, default="pending", index=True)  # pending, sent, failed
    email_sent = Column(Boolean, nullable=False, default=False)
    email_sent_at = Column(DateTime, nullable=True)
    sms_sent = Column(Boolean, nullable=False, default=False)
    sms_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class InvoiceSettingsRow(Base):
    __tablename__ = "invoice_settings"

    id = Column(Integer, primary_key=True)
    company_name = Column(String(200), nullable=True)
    company_email = Column(String(200), nullable=True)
    company_address = Column(String(500), nullable=True)
    company_phone = Column(String(50), nullable=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    email_provider = Column(String(20), nullable=False, default="sendgrid")
    email_from = Column(String(200), nullable=True)
    email_from_name = Column(String(200), nullable=True)
    email_reply_to = Column(String(200), nullable=True)
    email_subject_template = Column(Text, nullable=True)
    email_body_template = Column(Text, nullable=True)
    sms_enabled = Column(Boolean, nullable=False, default=False)
    sms_provider = Column(String(20), nullable=False, default="twilio")
    sms_from = Column(String(50), nullable=True)
    sms_template = Column(Text, nullable=True)
    auto_send_on_create = Column(Boolean, nullable=False, default=True)
    signed_url_expiry_days = Column(Integer, nullable=False, default=7)


class CustomerPreferenceRow(Base):
    __tablename__ = "customer_preferences"

    customer_email = Column(String(200), primary_key=True)
    email_unsubscribed = Column(Boolean, nullable=False, default=False)
    sms_opt_in = Column(Boolean, nullable=False, default=False)
    unsubscribe_token = Column(String(100), nullable=True, unique=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class InvoiceFileRow(Base):
    __tablename__ = "invoice_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(1024), nullable=False)  # local path or object key
    retrieval_url = Column(Text, nullable=True)  # presigned URL for remote storage
    file_size = Column(Integer, nullable=False)
    file_hash = Column(String(128), nullable=False)
    storage_type = Column(String(16), nullable=False)  # local, remote
    access_token = Column(Text, nullable=True)
    generated_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class SendLogRow(Base):
    __tablename__ = "send_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    send_type = Column(String(10), nullable=False)  # email, sms
    recipient = Column(String(200), nullable=True)
    status = Column(String(16), nullable=False, default="sending", index=True)  # sending, sent, delivered, failed
    provider = Column(String(50), nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    provider_response = Column(JSON, nullable=True)
    triggered_by = Column(String(100), nullable=True)
    trigger_type = Column(String(10), nullable=True)  # auto, manual
    queued_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    opened_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    error_code = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class DeliveryLeaseRow(Base):
    __tablename__ = "delivery_leases"

    invoice_id = Column(Integer, primary_key=True)
    holder = Column(String(100), nullable=False)
    expires_at = Column(DateTime, nullable=False)
