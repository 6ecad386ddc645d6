"""Delivery error taxonomy and the stage result type."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Tag carried by every delivery error so callers branch on kind, not message text."""

    CONFIGURATION = "configuration"
    RENDER = "render"
    STORAGE = "storage"
    DISPATCH = "dispatch"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    ACCESS = "access"


class DeliveryError(Exception):
    """Base class for all delivery pipeline errors."""

    kind: ErrorKind = ErrorKind.DISPATCH
    retryable: bool = True

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.kind.value


class ConfigurationError(DeliveryError):
    """Raised when no provider matches the configured credentials."""

    kind = ErrorKind.CONFIGURATION
    retryable = False


class RenderError(DeliveryError):
    """Raised when the invoice document cannot be generated."""

    kind = ErrorKind.RENDER


class StorageError(DeliveryError):
    """Raised when artifact persistence or retrieval fails."""

    kind = ErrorKind.STORAGE


class DispatchError(DeliveryError):
    """Raised when a channel provider rejects or fails a send."""

    kind = ErrorKind.DISPATCH


class ValidationError(DeliveryError):
    """Raised for malformed recipient addresses or numbers."""

    kind = ErrorKind.VALIDATION
    retryable = False


class DeliveryLockedError(DeliveryError):
    """Raised when another job holds the delivery lease for the same invoice."""

    kind = ErrorKind.CONFLICT


class InvoiceNotFoundError(DeliveryError):
    """Raised when an invoice id does not exist."""

    kind = ErrorKind.NOT_FOUND
    retryable = False


class AccessDeniedError(DeliveryError):
    """Raised when an artifact access token is invalid or expired."""

    kind = ErrorKind.ACCESS
    retryable = False


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of a pipeline stage that has a degraded path.

    Exactly one of ``value`` and ``error`` is set.
    """

    value: T | None = None
    error: DeliveryError | None = None

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: DeliveryError) -> "StageResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None
