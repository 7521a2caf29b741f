"""
Field-level encryption for tokens and other sensitive values.

Values are encrypted with AES-256-CBC under a random 16-byte IV and stored as
``"<iv hex>:<ciphertext hex>"``. The key is read from ``ENCRYPTION_KEY``;
outside production a key is derived from the application secret so local
setups work without extra configuration.
"""

import hashlib
import re
import secrets
from functools import lru_cache

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import get_config
from ..logging import get_logger

logger = get_logger("security.encryption")

IV_LENGTH = 16
KEY_DERIVATION_SALT = b"devpulse-field-encryption"
KEY_DERIVATION_ITERATIONS = 480_000

_ENCRYPTED_PATTERN = re.compile(r"^[0-9a-f]{32}:[0-9a-f]+$", re.IGNORECASE)


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted or decrypted."""


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=KEY_DERIVATION_SALT,
        iterations=KEY_DERIVATION_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


def _get_key() -> bytes:
    config = get_config()
    if config.encryption.key:
        return bytes.fromhex(config.encryption.key)
    return _derive_key(config.security.secret_key)


def encrypt(text: str) -> str:
    """Encrypt ``text`` and return ``"<iv hex>:<ciphertext hex>"``."""
    try:
        iv = secrets.token_bytes(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(text.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(_get_key()), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
    except (TypeError, ValueError) as e:
        logger.error("Encryption failed", error=str(e))
        raise EncryptionError("Failed to encrypt data") from e
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt(encrypted_text: str) -> str:
    """Decrypt a value produced by :func:`encrypt`."""
    parts = encrypted_text.split(":")
    if len(parts) != 2:
        raise EncryptionError("Invalid encrypted text format")

    try:
        iv = bytes.fromhex(parts[0])
        ciphertext = bytes.fromhex(parts[1])
        decryptor = Cipher(algorithms.AES(_get_key()), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except (TypeError, ValueError) as e:
        logger.error("Decryption failed", error=str(e))
        raise EncryptionError("Failed to decrypt data") from e


def is_encrypted(text: str) -> bool:
    """Check whether ``text`` looks like an encrypted value."""
    return bool(_ENCRYPTED_PATTERN.match(text))


def safe_decrypt(value: str) -> str:
    """Decrypt values that look encrypted and pass plain values through."""
    if not is_encrypted(value):
        return value
    return decrypt(value)


def hash_value(value: str) -> str:
    """SHA-256 hex digest of ``value``."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_secure_token(length: int = 32) -> str:
    """Random token of ``length`` bytes, hex encoded."""
    return secrets.token_hex(length)
