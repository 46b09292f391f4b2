"""Encryption of external calendar credentials at rest.

Uses XChaCha20-Poly1305 (PyNaCl SecretBox) with a master key taken from
FREEFOR_KEY_ENCRYPTION_KEY (base64, 32 bytes). Each token is sealed with a
fresh random 24-byte nonce and stored as a single text value:

    v1.<base64 nonce>.<base64 ciphertext>

Plaintext tokens and ciphertext are never logged.
"""

import base64
import binascii
import os
from functools import lru_cache

from nacl.exceptions import CryptoError as NaclCryptoError
from nacl.secret import SecretBox

from freefor.config import get_settings
from freefor.logging import get_logger

logger = get_logger(__name__)

# XChaCha20-Poly1305 nonce size (24 bytes)
NONCE_SIZE = 24

# Master key size (32 bytes for XChaCha20)
MASTER_KEY_SIZE = 32

TOKEN_VERSION = "v1"


class CryptoError(Exception):
    """Raised when cryptographic operations fail."""

    pass


@lru_cache(maxsize=1)
def _get_master_key() -> bytes:
    """Load and validate the master key from settings.

    Raises:
        CryptoError: If the key is missing, invalid base64, or wrong size.
    """
    key_b64 = get_settings().freefor_key_encryption_key
    if not key_b64:
        raise CryptoError("FREEFOR_KEY_ENCRYPTION_KEY is not set")

    try:
        key = base64.b64decode(key_b64, validate=True)
    except binascii.Error as e:
        raise CryptoError(f"FREEFOR_KEY_ENCRYPTION_KEY is not valid base64: {e}") from e

    if len(key) != MASTER_KEY_SIZE:
        raise CryptoError(
            f"FREEFOR_KEY_ENCRYPTION_KEY must be {MASTER_KEY_SIZE} bytes, got {len(key)} bytes"
        )

    return key


def clear_master_key_cache() -> None:
    """Clear the cached master key. Useful for testing or key rotation."""
    _get_master_key.cache_clear()


def encrypt_secretbox(plaintext: bytes, nonce: bytes) -> bytes:
    """Encrypt with the master key; returns ciphertext + 16-byte auth tag.

    Raises:
        ValueError: If nonce is wrong size.
        CryptoError: If the master key is not configured.
    """
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")

    box = SecretBox(_get_master_key())
    # SecretBox.encrypt prepends the nonce; it is stored separately
    return box.encrypt(plaintext, nonce=nonce).ciphertext


def decrypt_secretbox(ciphertext: bytes, nonce: bytes) -> bytes:
    """Decrypt data sealed by encrypt_secretbox.

    Raises:
        ValueError: If nonce is wrong size.
        CryptoError: On a wrong key, wrong nonce, or tampered data.
    """
    if len(nonce) != NONCE_SIZE:
        raise ValueError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")

    box = SecretBox(_get_master_key())
    try:
        return box.decrypt(ciphertext, nonce=nonce)
    except NaclCryptoError as e:
        logger.error("decryption_failed")
        raise CryptoError("Decryption failed") from e


def encrypt_token(plaintext: str) -> str:
    """Seal a credential for storage in a text column."""
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = encrypt_secretbox(plaintext.encode("utf-8"), nonce)
    return ".".join(
        [
            TOKEN_VERSION,
            base64.urlsafe_b64encode(nonce).decode("ascii"),
            base64.urlsafe_b64encode(ciphertext).decode("ascii"),
        ]
    )


def decrypt_token(sealed: str) -> str:
    """Open a credential produced by encrypt_token.

    Raises:
        CryptoError: If the value is malformed, has an unknown version, or fails
            authentication.
    """
    parts = sealed.split(".")
    if len(parts) != 3:
        raise CryptoError("Malformed sealed token")
    version, nonce_b64, ciphertext_b64 = parts
    if version != TOKEN_VERSION:
        raise CryptoError(f"Unknown token version: {version}")

    try:
        nonce = base64.urlsafe_b64decode(nonce_b64)
        ciphertext = base64.urlsafe_b64decode(ciphertext_b64)
    except binascii.Error as e:
        raise CryptoError("Malformed sealed token") from e
    if len(nonce) != NONCE_SIZE:
        raise CryptoError("Malformed sealed token")

    return decrypt_secretbox(ciphertext, nonce).decode("utf-8")
