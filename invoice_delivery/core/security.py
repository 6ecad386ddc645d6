"""Content hashing and signed access tokens for artifact retrieval."""

import base64
import binascii
import hashlib
import time
from datetime import timedelta
from typing import Callable

from cryptography.hazmat.primitives import constant_time, hashes, hmac

from invoice_delivery.config import settings
from invoice_delivery.utils.logger import logger


def compute_hash(data: bytes, algorithm: str = "SHA256") -> str:
    """Compute hex digest of data using specified algorithm."""
    if algorithm not in ("SHA256", "SHA384", "SHA512"):
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")
    return hashlib.new(algorithm.lower(), data).hexdigest()


def artifact_resource_id(invoice_id: int) -> str:
    """Resource identifier that retrieval tokens for an invoice document are bound to."""
    return f"/api/v1/invoices/{invoice_id}/pdf"


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


class AccessTokenCodec:
    """Mints and verifies stateless, URL-safe, time-limited tokens.

    Token layout: ``<b64url(resource_id)>.<expiry_ms>.<b64url(hmac_sha256)>`` where the tag is
    computed over the first two segments with the shared secret.
    """

    def __init__(
        self,
        secret: str | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._secret = (secret or settings.signed_url_secret).encode("utf-8")
        self._clock = clock

    def mint(self, resource_id: str, expires_in: timedelta | None = None) -> str:
        """Create a token for ``resource_id`` valid for ``expires_in``."""
        if expires_in is None:
            expires_in = timedelta(days=settings.signed_url_expiry_days)
        expiry_ms = int((self._clock() + expires_in.total_seconds()) * 1000)
        return self._encode(resource_id, expiry_ms)

    def verify(self, token: str, resource_id: str) -> bool:
        """Return True only for an untampered, unexpired token bound to ``resource_id``."""
        if not token:
            return False
        try:
            encoded_resource, expiry_text, _ = token.split(".")
            token_resource = _b64decode(encoded_resource).decode("utf-8")
            expiry_ms = int(expiry_text)
        except (ValueError, UnicodeDecodeError, binascii.Error):
            logger.debug("Access token is malformed")
            return False

        # Re-encode and compare the whole token so non-canonical encodings are rejected too
        expected = self._encode(token_resource, expiry_ms)
        if not constant_time.bytes_eq(expected.encode("ascii"), token.encode("ascii", "replace")):
            logger.debug("Access token signature mismatch")
            return False

        if token_resource != resource_id:
            logger.debug("Access token bound to a different resource")
            return False

        if self._clock() * 1000 >= expiry_ms:
            logger.debug("Access token expired")
            return False

        return True

    def _encode(self, resource_id: str, expiry_ms: int) -> str:
        signing_input = f"{_b64encode(resource_id.encode('utf-8'))}.{expiry_ms}"
        mac = hmac.HMAC(self._secret, hashes.SHA256())
        mac.update(signing_input.encode("ascii"))
        return f"{signing_input}.{_b64encode(mac.finalize())}"
