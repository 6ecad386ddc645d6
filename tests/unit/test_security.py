"""Unit tests for content hashing and access tokens."""

import hashlib
from datetime import timedelta

import pytest

from invoice_delivery.core.security import AccessTokenCodec, artifact_resource_id, compute_hash

RESOURCE = "/api/v1/invoices/42/pdf"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestComputeHash:
    def test_sha256_default(self):
        """Test default digest is SHA-256 hex."""
        assert compute_hash(b"invoice") == hashlib.sha256(b"invoice").hexdigest()

    def test_sha512(self):
        assert compute_hash(b"invoice", "SHA512") == hashlib.sha512(b"invoice").hexdigest()

    def test_unsupported_algorithm(self):
        with pytest.raises(ValueError, match="Unsupported"):
            compute_hash(b"invoice", "MD5")


class TestAccessTokenCodec:
    """Test cases for AccessTokenCodec."""

    def test_resource_id(self):
        assert artifact_resource_id(42) == RESOURCE

    def test_round_trip(self):
        """Test a freshly minted token verifies for its resource."""
        codec = AccessTokenCodec("secret")
        token = codec.mint(RESOURCE, timedelta(days=7))
        assert codec.verify(token, RESOURCE) is True

    def test_token_is_url_safe(self):
        codec = AccessTokenCodec("secret")
        token = codec.mint(RESOURCE, timedelta(days=7))
        assert all(c.isalnum() or c in "-_." for c in token)

    def test_expired_token(self):
        """Test token is rejected once its expiry has passed."""
        clock = FakeClock()
        codec = AccessTokenCodec("secret", clock=clock)
        token = codec.mint(RESOURCE, timedelta(seconds=60))

        clock.now += 59
        assert codec.verify(token, RESOURCE) is True
        clock.now += 1
        assert codec.verify(token, RESOURCE) is False

    def test_wrong_resource(self):
        """Test token for one invoice does not open another."""
        codec = AccessTokenCodec("secret")
        token = codec.mint(RESOURCE, timedelta(days=1))
        assert codec.verify(token, artifact_resource_id(43)) is False

    def test_different_secret(self):
        token = AccessTokenCodec("secret").mint(RESOURCE, timedelta(days=1))
        assert AccessTokenCodec("other-secret").verify(token, RESOURCE) is False

    def test_extended_expiry_rejected(self):
        """Test editing the expiry segment invalidates the signature."""
        codec = AccessTokenCodec("secret")
        resource, expiry, tag = codec.mint(RESOURCE, timedelta(seconds=60)).split(".")
        forged = f"{resource}.{int(expiry) + 86_400_000}.{tag}"
        assert codec.verify(forged, RESOURCE) is False

    def test_every_single_character_change_rejected(self):
        """Test changing any one character of the token fails verification."""
        codec = AccessTokenCodec("secret")
        token = codec.mint(RESOURCE, timedelta(days=1))
        for index, char in enumerate(token):
            replacement = "A" if char != "A" else "B"
            tampered = token[:index] + replacement + token[index + 1 :]
            assert codec.verify(tampered, RESOURCE) is False, f"position {index}"

    @pytest.mark.parametrize(
        "token",
        ["", "abc", "a.b", "a.b.c.d", "Zm9v.not-a-number.sig", "Zm9v.123.", "é.1.x"],
    )
    def test_malformed_tokens(self, token):
        """Test malformed input is rejected without raising."""
        assert AccessTokenCodec("secret").verify(token, RESOURCE) is False
