"""Encryption Engine.

Device-bound master key management, per-record key derivation with
PBKDF2-HMAC-SHA256, and AES-256-GCM authenticated encryption. Also
provides one-way identifier hashing and secure random tokens.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
import secrets
import threading
import time
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ausmo.errors import DecryptionError, EncryptionError, PersistenceError
from ausmo.storage import KeyValueStore

from .config import DEVICE_ID_KEY, MASTER_KEY_KEY, EncryptedRecord, EncryptionConfig

logger = logging.getLogger(__name__)


class EncryptionEngine:
    """Encrypts and decrypts sensitive records under a device master key.

    One engine should exist per process. The master key is generated once,
    written to the protected key/value slot, and cached in memory until
    ``clear_sensitive_data()`` is called.
    """

    def __init__(
        self,
        key_store: KeyValueStore,
        config: Optional[EncryptionConfig] = None,
        platform: str = "ios",
    ) -> None:
        self.config = config or EncryptionConfig()
        if self.config.iterations < 10_000:
            raise EncryptionError("PBKDF2 iteration count must be at least 10,000")
        self.platform = platform
        self._key_store = key_store
        self._master_key: Optional[str] = None
        self._device_id: Optional[str] = None
        self._lock = threading.RLock()

    # ── Key management ───────────────────────────────────────────────

    def _generate_device_id(self) -> str:
        timestamp = str(int(time.time() * 1000))
        return hashlib.sha256(
            f"{self.platform}_{timestamp}_{secrets.token_hex(16)}".encode()
        ).hexdigest()

    def _get_device_id(self) -> str:
        with self._lock:
            if self._device_id:
                return self._device_id
            stored = self._key_store.get(DEVICE_ID_KEY)
            if stored:
                self._device_id = stored
            else:
                self._device_id = self._generate_device_id()
                self._key_store.set(DEVICE_ID_KEY, self._device_id)
                logger.info("Generated new device encryption id")
            return self._device_id

    def _generate_master_key(self) -> str:
        device_id = self._get_device_id()
        timestamp = str(int(time.time() * 1000))
        return hashlib.sha256(
            f"{device_id}_{timestamp}_{secrets.token_hex(32)}".encode()
        ).hexdigest()

    def _get_master_key(self) -> str:
        with self._lock:
            if self._master_key:
                return self._master_key
            try:
                stored = self._key_store.get(MASTER_KEY_KEY)
                if stored:
                    self._master_key = stored
                    return self._master_key
                self._master_key = self._generate_master_key()
                self._key_store.set(MASTER_KEY_KEY, self._master_key)
            except PersistenceError as exc:
                raise EncryptionError(f"Failed to initialize encryption: {exc}") from exc
            logger.info("Generated new device master key")
            return self._master_key

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.config.key_size // 8,
            salt=salt,
            iterations=self.config.iterations,
        )
        return kdf.derive(self._get_master_key().encode())

    # ── Encryption ───────────────────────────────────────────────────

    def encrypt(self, data: Any, category: str) -> EncryptedRecord:
        """Encrypt a JSON-serializable payload for a data category.

        A fresh salt and IV are drawn for every call.
        """
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Payload for '{category}' is not serializable: {exc}") from exc

        salt = os.urandom(self.config.salt_size)
        iv = os.urandom(self.config.iv_size)
        try:
            key = self._derive_key(salt)
            ciphertext = AESGCM(key).encrypt(iv, plaintext, category.encode("utf-8"))
        except EncryptionError:
            raise
        except (ValueError, TypeError) as exc:
            logger.error("Encryption failed for category %s: %s", category, exc)
            raise EncryptionError(f"Failed to encrypt data for '{category}'") from exc

        return EncryptedRecord(
            ciphertext=base64.b64encode(ciphertext).decode("ascii"),
            salt=salt.hex(),
            iv=iv.hex(),
            algorithm=self.config.algorithm,
        )

    def decrypt(self, record: EncryptedRecord, category: str) -> Any:
        """Decrypt a record; any failure is a hard ``DecryptionError``."""
        try:
            salt = bytes.fromhex(record.salt)
            iv = bytes.fromhex(record.iv)
            ciphertext = base64.b64decode(record.ciphertext, validate=True)
        except (ValueError, binascii.Error) as exc:
            raise DecryptionError(f"Malformed encrypted record for '{category}'") from exc

        try:
            key = self._derive_key(salt)
            plaintext = AESGCM(key).decrypt(iv, ciphertext, category.encode("utf-8"))
        except EncryptionError as exc:
            raise DecryptionError(str(exc)) from exc
        except (InvalidTag, ValueError) as exc:
            logger.error("Decryption failed for category %s", category)
            raise DecryptionError(
                f"Failed to decrypt data for '{category}': record is corrupted or was "
                "encrypted with a different key or category"
            ) from exc

        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecryptionError(f"Decrypted payload for '{category}' is not valid JSON") from exc

    # ── Hashing & tokens ─────────────────────────────────────────────

    def hash_identifier(self, value: str, salt: Optional[str] = None) -> str:
        """One-way hash of an identifier; a random salt is used when none is given."""
        hash_salt = salt if salt is not None else secrets.token_hex(16)
        return hashlib.sha256(f"{value}_{hash_salt}".encode("utf-8")).hexdigest()

    def random_token(self, length: int = 32) -> str:
        """Return ``length`` random bytes as a hex string."""
        if length <= 0:
            raise ValueError("Token length must be positive")
        return secrets.token_hex(length)

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def has_cached_key(self) -> bool:
        return self._master_key is not None

    def get_status(self) -> dict[str, Any]:
        """Report algorithm parameters and key initialisation state."""
        return {
            "enabled": True,
            "algorithm": self.config.algorithm,
            "key_size": self.config.key_size,
            "iterations": self.config.iterations,
            "device_id": "initialized" if self._device_id else "not_initialized",
            "master_key": "initialized" if self._master_key else "not_initialized",
        }

    def clear_sensitive_data(self) -> None:
        """Drop the cached master key; it is re-loaded on next use."""
        with self._lock:
            self._master_key = None
        logger.info("Cleared cached encryption key material")
