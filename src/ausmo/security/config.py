"""Encryption configuration and record types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Key names in the protected key/value slot
DEVICE_ID_KEY = "device_encryption_id"
MASTER_KEY_KEY = "master_encryption_key"


@dataclass(frozen=True)
class EncryptionConfig:
    """Parameters for per-record key derivation and AES-GCM."""

    algorithm: str = "AES-256-GCM"
    key_size: int = 256  # bits
    iterations: int = 10_000
    salt_size: int = 16  # bytes
    iv_size: int = 16  # bytes


@dataclass
class EncryptedRecord:
    """Ciphertext plus the salt and IV needed to derive its key.

    The GCM authentication tag is appended to ``ciphertext`` and the data
    category is bound as associated data, so a record only decrypts under
    the category it was encrypted for.
    """

    ciphertext: str  # base64
    salt: str  # hex
    iv: str  # hex
    algorithm: str = "AES-256-GCM"

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.ciphertext,
            "salt": self.salt,
            "iv": self.iv,
            "algorithm": self.algorithm,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "EncryptedRecord":
        return cls(
            ciphertext=payload["data"],
            salt=payload["salt"],
            iv=payload["iv"],
            algorithm=payload.get("algorithm", "AES-256-GCM"),
        )
