"""
Unit tests for hashing and encryption.
"""

import hashlib

import pytest

from couchentity import Security, Settings
from couchentity.errors import SecurityError


class TestHash:
    """Tests for Security.hash."""

    def test_sha256_hex(self):
        """Hashes are SHA-256 hex digests of the value's text."""
        security = Security()
        assert security.hash("welcome1a") == hashlib.sha256(b"welcome1a").hexdigest()
        assert security.hash(1234) == hashlib.sha256(b"1234").hexdigest()

    def test_deterministic(self):
        """The key does not change the hash."""
        assert Security("a").hash("x") == Security("b").hash("x")

    @pytest.mark.parametrize("empty", [None, ""])
    def test_empty_passes_through(self, empty):
        """Empty values are not hashed."""
        assert Security().hash(empty) == empty


class TestEncryption:
    """Tests for Security.encrypt/decrypt."""

    @pytest.mark.parametrize("value", ["secret", 1234, 1.5, True, ["a", 1], {"pin": "0000"}])
    def test_round_trip(self, security, value):
        """Any JSON value decrypts to itself."""
        token = security.encrypt(value)

        assert isinstance(token, str)
        assert token != value
        assert security.decrypt(token) == value

    def test_none_passes_through(self, security):
        """None is neither encrypted nor decrypted."""
        assert security.encrypt(None) is None
        assert security.decrypt(None) is None

    def test_tokens_differ(self, security):
        """Encrypting twice gives different tokens."""
        assert security.encrypt("x") != security.encrypt("x")

    def test_no_key(self):
        """Encryption without a key fails."""
        security = Security()
        assert security.can_encrypt is False
        with pytest.raises(SecurityError, match="No secret key"):
            security.encrypt("x")

    def test_wrong_key(self, security):
        """Tokens of another key are rejected."""
        token = security.encrypt("x")
        with pytest.raises(SecurityError, match="Cannot decrypt"):
            Security("other-key").decrypt(token)

    def test_invalid_token(self, security):
        """Garbage tokens are rejected."""
        with pytest.raises(SecurityError):
            security.decrypt("not-a-token")

    def test_from_settings(self):
        """Security takes its key from settings."""
        security = Security.from_settings(Settings(secret_key="from-settings"))
        assert security.can_encrypt is True
        assert Security("from-settings").decrypt(security.encrypt("v")) == "v"
