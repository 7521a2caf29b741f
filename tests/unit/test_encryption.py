"""Tests for field encryption helpers."""

import pytest

from devpulse.core.security.encryption import (
    EncryptionError,
    decrypt,
    encrypt,
    generate_secure_token,
    hash_value,
    is_encrypted,
    safe_decrypt,
)


@pytest.mark.unit
class TestEncryption:
    """Test AES field encryption."""

    def test_encrypted_format(self) -> None:
        """Test values are stored as iv:ciphertext hex."""
        value = encrypt("gho_token")
        iv, ciphertext = value.split(":")

        assert len(iv) == 32
        assert len(ciphertext) % 32 == 0
        assert is_encrypted(value)

    def test_decrypt_recovers_plaintext(self) -> None:
        """Test decrypt reverses encrypt, including non-ASCII text."""
        assert decrypt(encrypt("gho_token")) == "gho_token"
        assert decrypt(encrypt("café ✓")) == "café ✓"

    def test_random_iv_per_value(self) -> None:
        """Test the same plaintext encrypts differently each time."""
        assert encrypt("same") != encrypt("same")

    def test_decrypt_rejects_malformed_input(self) -> None:
        """Test malformed values raise EncryptionError."""
        with pytest.raises(EncryptionError):
            decrypt("not-encrypted")
        with pytest.raises(EncryptionError):
            decrypt("zz:zz")

    def test_safe_decrypt_passes_plain_values_through(self) -> None:
        """Test legacy plaintext tokens are returned unchanged."""
        assert safe_decrypt("gho_plain") == "gho_plain"
        assert safe_decrypt(encrypt("gho_secret")) == "gho_secret"

    def test_is_encrypted(self) -> None:
        """Test the shape check."""
        assert not is_encrypted("gho_plain")
        assert not is_encrypted("abc:def")

    def test_hash_and_token_helpers(self) -> None:
        """Test hashing is stable and tokens are random hex."""
        assert hash_value("x") == hash_value("x")
        assert len(hash_value("x")) == 64
        token = generate_secure_token(16)
        assert len(token) == 32
        assert token != generate_secure_token(16)
