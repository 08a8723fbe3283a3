"""Field-level encryption for stored identity document numbers.

AES-256-GCM with a fresh 12-byte nonce per call. The stored form is
base64(nonce || ciphertext || tag).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import ENCRYPTION_KEY_HEX_LENGTH
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
MASK_PREFIX_LENGTH = 8
FULL_MASK = "****"


class DecryptionError(ValueError):
    """Ciphertext is malformed, truncated, or was sealed with another key."""


def generate_key() -> str:
    """New random 32-byte key as 64 hex characters."""
    return secrets.token_hex(KEY_LENGTH)


def hash_field(value: str) -> str:
    """SHA-256 hex digest, for duplicate detection without decrypting."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def mask(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact all but the last ``visible_chars`` characters.

    The redacted prefix is always the same length so the mask does not
    leak the original length. Values too short to keep a suffix are
    fully masked.
    """
    if not value or len(value) <= visible_chars:
        return FULL_MASK
    if visible_chars <= 0:
        return "*" * MASK_PREFIX_LENGTH
    return "*" * MASK_PREFIX_LENGTH + value[-visible_chars:]


class FieldCipher:
    """Encrypts, decrypts and masks sensitive string fields."""

    def __init__(self, key: bytes, visible_chars: int = 4):
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(
                f"Encryption key must be {KEY_LENGTH} bytes ({ENCRYPTION_KEY_HEX_LENGTH} hex characters)"
            )
        self._aead = AESGCM(key)
        self.visible_chars = visible_chars

    @classmethod
    def from_hex(cls, hex_key: Optional[str], visible_chars: int = 4) -> "FieldCipher":
        if not hex_key:
            raise ConfigurationError("ENCRYPTION_KEY is required")
        hex_key = hex_key.strip()
        if len(hex_key) != ENCRYPTION_KEY_HEX_LENGTH:
            raise ConfigurationError(
                f"ENCRYPTION_KEY must be {ENCRYPTION_KEY_HEX_LENGTH} hex characters, got {len(hex_key)}"
            )
        try:
            key = bytes.fromhex(hex_key)
        except ValueError as e:
            raise ConfigurationError("ENCRYPTION_KEY must be hex encoded") from e
        return cls(key, visible_chars=visible_chars)

    @classmethod
    def from_settings(cls, settings) -> "FieldCipher":
        return cls.from_hex(settings.encryption_key, visible_chars=settings.mask_visible_chars)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a value produced by ``encrypt``.

        Raises:
            DecryptionError: On malformed input or authentication failure.
        """
        try:
            combined = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Ciphertext is not valid base64") from e
        if len(combined) < NONCE_LENGTH + TAG_LENGTH:
            raise DecryptionError("Ciphertext is too short")
        nonce, sealed = combined[:NONCE_LENGTH], combined[NONCE_LENGTH:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            raise DecryptionError("Ciphertext failed authentication") from e
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Plaintext is not valid UTF-8") from e

    def safe_decrypt(self, ciphertext: Optional[str]) -> Optional[str]:
        """Decrypt, returning None (and logging) instead of raising."""
        if not ciphertext:
            return None
        try:
            return self.decrypt(ciphertext)
        except DecryptionError as e:
            logger.warning("Failed to decrypt field: %s", e)
            return None

    def mask(self, value: Optional[str]) -> str:
        return mask(value, self.visible_chars)

    def safe_mask(self, ciphertext: Optional[str]) -> str:
        """Display-safe form of a stored value. Never raises.

        Legacy or corrupted values that cannot be decrypted are masked
        as-is.
        """
        plaintext = self.safe_decrypt(ciphertext)
        if plaintext is None:
            return self.mask(ciphertext)
        return self.mask(plaintext)
