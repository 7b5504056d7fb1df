"""Encryption engine for sensitive records and snapshots."""

from .config import DEVICE_ID_KEY, MASTER_KEY_KEY, EncryptedRecord, EncryptionConfig
from .engine import EncryptionEngine

__all__ = [
    "DEVICE_ID_KEY",
    "MASTER_KEY_KEY",
    "EncryptedRecord",
    "EncryptionConfig",
    "EncryptionEngine",
]
