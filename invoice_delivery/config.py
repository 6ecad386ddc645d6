"""Application configuration using Pydantic settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Invoice Delivery Service")
    app_version: str = Field(default="1.0.0")
    app_url: str = Field(default="http://localhost:8000", description="Base URL for customer links")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(default="sqlite:///./data/invoices.db")

    # Queue
    queue_backend: str = Field(default="immediate", description="immediate or arq")
    redis_url: str = Field(default="redis://localhost:6379/0")
    queue_name: str = Field(default="invoice-notifications")
    queue_concurrency: int = Field(default=5, ge=1)
    queue_max_retry_attempts: int = Field(default=3, ge=0)
    queue_retry_delay: int = Field(default=300, ge=0, description="Base retry delay in seconds")
    queue_backoff_type: str = Field(default="exponential", description="fixed or exponential")
    queue_job_timeout: int = Field(default=300, ge=1)
    queue_drain_timeout: float = Field(default=30.0, ge=0)

    # Email Service
    sendgrid_api_key: Optional[str] = Field(default=None)
    sendgrid_api_url: str = Field(default="https://api.sendgrid.com/v3/mail/send")
    mailgun_api_key: Optional[str] = Field(default=None)
    mailgun_domain: Optional[str] = Field(default=None)
    mailgun_host: str = Field(default="api.mailgun.net")
    ses_region: str = Field(default="us-east-1")
    ses_access_key: Optional[str] = Field(default=None)
    ses_secret_key: Optional[str] = Field(default=None)
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_user: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    email_from: str = Field(default="invoices@example.com")
    email_from_name: str = Field(default="Invoice Delivery")
    email_reply_to: Optional[str] = Field(default=None)
    email_tracking: bool = Field(default=False)

    # SMS Service
    twilio_account_sid: Optional[str] = Field(default=None)
    twilio_auth_token: Optional[str] = Field(default=None)
    twilio_phone_number: Optional[str] = Field(default=None)
    twilio_messaging_service_sid: Optional[str] = Field(default=None)
    twilio_api_url: str = Field(default="https://api.twilio.com/2010-04-01")
    vonage_api_key: Optional[str] = Field(default=None)
    vonage_api_secret: Optional[str] = Field(default=None)
    vonage_phone_number: Optional[str] = Field(default=None)
    vonage_api_url: str = Field(default="https://rest.nexmo.com/sms/json")
    sms_api_url: Optional[str] = Field(default=None)
    sms_api_key: Optional[str] = Field(default=None)
    sms_sender_name: str = Field(default="Invoices")
    sms_default_country_code: str = Field(default="1", description="Calling code for national numbers")

    provider_timeout_seconds: float = Field(default=30.0, gt=0)

    # Signed links
    signed_url_secret: str = Field(default="change-this-secret")
    signed_url_expiry_days: int = Field(default=7, ge=1)

    # Storage
    storage_type: str = Field(default="local", description="local or s3")
    storage_local_path: str = Field(default="./storage/invoices")
    s3_bucket_name: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_access_key: Optional[str] = Field(default=None)
    s3_secret_key: Optional[str] = Field(default=None)
    s3_endpoint_url: Optional[str] = Field(default=None)
    s3_presigned_url_expiration: int = Field(default=604800)

    # Delivery
    idempotency_window_minutes: int = Field(default=60, ge=0)
    delivery_lease_seconds: int = Field(default=600, ge=1)
    stale_attempt_minutes: int = Field(default=30, ge=1)
    maintenance_interval_minutes: int = Field(default=15, ge=1)
    scheduler_timezone: str = Field(default="UTC")

    @field_validator("queue_backend")
    @classmethod
    def validate_queue_backend(cls, v: str) -> str:
        """Validate queue backend."""
        if v.lower() not in ["immediate", "arq"]:
            raise ValueError("Queue backend must be 'immediate' or 'arq'")
        return v.lower()

    @field_validator("queue_backoff_type")
    @classmethod
    def validate_backoff_type(cls, v: str) -> str:
        """Validate retry backoff type."""
        if v.lower() not in ["fixed", "exponential"]:
            raise ValueError("Backoff type must be 'fixed' or 'exponential'")
        return v.lower()

    @field_validator("storage_type")
    @classmethod
    def validate_storage_type(cls, v: str) -> str:
        """Validate storage backend."""
        if v.lower() not in ["local", "s3"]:
            raise ValueError("Storage type must be 'local' or 's3'")
        return v.lower()

    @field_validator("sms_default_country_code")
    @classmethod
    def validate_country_code(cls, v: str) -> str:
        """Validate default calling code (digits only, '+' optional)."""
        digits = v.lstrip("+")
        if not digits.isdigit() or not 1 <= len(digits) <= 3:
            raise ValueError("Default country code must be 1-3 digits")
        return digits

    def get_storage_local_path(self) -> Path:
        """Get local artifact directory as Path object."""
        return Path(self.storage_local_path)

    def ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        if self.storage_type == "local":
            self.get_storage_local_path().mkdir(parents=True, exist_ok=True)
        if self.database_url.startswith("sqlite:///"):
            db_path = Path(self.database_url.removeprefix("sqlite:///"))
            if db_path.name and str(db_path) != ":memory:":
                db_path.parent.mkdir(parents=True, exist_ok=True)


# Global settings instance
settings = Settings()
