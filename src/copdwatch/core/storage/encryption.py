"""Fernet-based field encryption for patient data at rest.

Patient identity and smartphone telemetry are encrypted before writing to
SQLite. Oximeter readings and dose timestamps remain unencrypted for
time-series queries.

Several keys may be configured (comma-separated). The first key encrypts;
every key is tried for decryption, so old data stays readable while it is
rotated onto the new key.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts JSON-serializable data with (Multi)Fernet.

    Usage::

        encryptor = FieldEncryptor(key="new-key,old-key")
        encrypted = encryptor.encrypt({"name": "Jean Dupont"})
        decrypted = encryptor.decrypt(encrypted)
        rotated = encryptor.rotate(legacy_token)
    """

    def __init__(self, key: str) -> None:
        """Initialize with one Fernet key or a comma-separated list of keys.

        Raises:
            EncryptionError: If no key is given or any key is invalid.
        """
        keys = [k.strip() for k in (key or "").split(",") if k.strip()]
        if not keys:
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = MultiFernet([Fernet(k.encode()) for k in keys])
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc
        self.key_count = len(keys)

    def encrypt(self, data: Any) -> str:
        """Encrypt a JSON-serializable value to a Fernet token string.

        ``None`` encrypts to the empty string.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
            return self._fernet.encrypt(plaintext).decode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc

    def decrypt(self, token: str) -> Any:
        """Decrypt a Fernet token string back to a Python object.

        Raises:
            EncryptionError: If the token is invalid or no key matches.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
            return json.loads(plaintext)
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    def rotate(self, token: str) -> str:
        """Re-encrypt a token under the primary (first) key."""
        if not token:
            return ""
        try:
            return self._fernet.rotate(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Rotation failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64-encoded 32-byte Fernet key."""
        return Fernet.generate_key().decode("utf-8")
