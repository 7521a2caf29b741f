"""Encryption helpers for sensitive field storage."""

from .encryption import (
    EncryptionError,
    decrypt,
    encrypt,
    generate_secure_token,
    hash_value,
    is_encrypted,
    safe_decrypt,
)

__all__ = [
    "EncryptionError",
    "decrypt",
    "encrypt",
    "generate_secure_token",
    "hash_value",
    "is_encrypted",
    "safe_decrypt",
]
