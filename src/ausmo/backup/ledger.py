"""Backup metadata ledger.

Persisted history of backup attempts and restore attempts. Every mutation
is written straight back to the key/value store so a crash leaves the
ledger consistent with what actually completed.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from dateutil import parser as date_parser

from ausmo.errors import NotFoundError, PersistenceError
from ausmo.storage import KeyValueStore

from .config import (
    HISTORY_KEY,
    RESTORE_HISTORY_KEY,
    SCHEMA_VERSION,
    BackupKind,
    BackupStatus,
    VerificationStatus,
)

logger = logging.getLogger(__name__)


def generate_backup_id(now: datetime) -> str:
    return f"backup_{now.strftime('%Y%m%dT%H%M%S')}_{uuid.uuid4().hex[:8]}"


@dataclass
class BackupMetadata:
    """One backup attempt."""

    id: str
    timestamp: datetime
    kind: BackupKind = BackupKind.FULL
    size: int = 0
    checksum: str = ""
    version: str = SCHEMA_VERSION
    environment: str = "production"
    platform: str = "ios"
    user_id: Optional[str] = None
    status: BackupStatus = BackupStatus.IN_PROGRESS
    error: Optional[str] = None
    verification_status: VerificationStatus = VerificationStatus.PENDING
    description: Optional[str] = None
    encrypted: bool = False
    duration_seconds: float = 0.0
    remote_reference: Optional[str] = None
    upload_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["kind"] = self.kind.value
        data["status"] = self.status.value
        data["verification_status"] = self.verification_status.value
        return data

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "BackupMetadata":
        data = dict(payload)
        data["timestamp"] = date_parser.isoparse(data["timestamp"])
        data["kind"] = BackupKind(data.get("kind", BackupKind.FULL.value))
        data["status"] = BackupStatus(data["status"])
        data["verification_status"] = VerificationStatus(
            data.get("verification_status", VerificationStatus.PENDING.value)
        )
        return cls(**data)


@dataclass
class RestoreRecord:
    """One restore attempt."""

    id: str
    backup_id: str
    plan_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: BackupStatus = BackupStatus.IN_PROGRESS
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    skipped_steps: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RestoreRecord":
        data = dict(payload)
        data["started_at"] = date_parser.isoparse(data["started_at"])
        if data.get("completed_at"):
            data["completed_at"] = date_parser.isoparse(data["completed_at"])
        data["status"] = BackupStatus(data["status"])
        return cls(**data)


class BackupLedger:
    """Newest-first history of backup attempts, persisted on every change."""

    def __init__(self, kv_store: KeyValueStore, max_restore_records: int = 50):
        self._kv = kv_store
        self._entries: list[BackupMetadata] = []
        self._restores: list[RestoreRecord] = []
        self.max_restore_records = max_restore_records
        self._lock = threading.RLock()

    # ── Persistence ──────────────────────────────────────────────────

    def load(self) -> None:
        with self._lock:
            self._entries = self._read(HISTORY_KEY, BackupMetadata.from_dict)
            self._restores = self._read(RESTORE_HISTORY_KEY, RestoreRecord.from_dict)
        logger.info(
            "Loaded %d backup and %d restore records",
            len(self._entries), len(self._restores),
        )

    def _read(self, key: str, factory: Callable[[dict], Any]) -> list:
        raw = self._kv.get(key)
        if not raw:
            return []
        try:
            return [factory(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as exc:
            raise PersistenceError(f"Ledger record '{key}' is corrupted: {exc}", path=key) from exc

    def _persist(self) -> None:
        self._kv.set(HISTORY_KEY, json.dumps([m.to_dict() for m in self._entries]))

    def _persist_restores(self) -> None:
        self._kv.set(
            RESTORE_HISTORY_KEY, json.dumps([r.to_dict() for r in self._restores])
        )

    # ── Backups ──────────────────────────────────────────────────────

    def append(self, metadata: BackupMetadata) -> None:
        with self._lock:
            self._entries.insert(0, metadata)
            self._persist()

    def update(self, metadata: BackupMetadata) -> None:
        with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.id == metadata.id:
                    self._entries[index] = metadata
                    self._persist()
                    return
        raise NotFoundError(
            f"Backup {metadata.id} not found", resource_type="backup", resource_id=metadata.id
        )

    def get(self, backup_id: str) -> Optional[BackupMetadata]:
        with self._lock:
            return next((m for m in self._entries if m.id == backup_id), None)

    def history(self, limit: Optional[int] = None) -> list[BackupMetadata]:
        with self._lock:
            entries = list(self._entries)
        return entries if limit is None else entries[: max(limit, 0)]

    def remove(self, backup_id: str) -> bool:
        with self._lock:
            remaining = [m for m in self._entries if m.id != backup_id]
            if len(remaining) == len(self._entries):
                return False
            self._entries = remaining
            self._persist()
            return True

    def older_than(self, cutoff: datetime) -> list[BackupMetadata]:
        with self._lock:
            return [m for m in self._entries if m.timestamp < cutoff]

    def last_successful(self) -> Optional[BackupMetadata]:
        with self._lock:
            return next(
                (m for m in self._entries if m.status == BackupStatus.COMPLETED), None
            )

    # ── Restores ─────────────────────────────────────────────────────

    def record_restore(self, record: RestoreRecord) -> None:
        """Insert or replace a restore record."""
        with self._lock:
            self._restores = [r for r in self._restores if r.id != record.id]
            self._restores.insert(0, record)
            del self._restores[self.max_restore_records:]
            self._persist_restores()

    def restore_history(self, limit: Optional[int] = None) -> list[RestoreRecord]:
        with self._lock:
            records = list(self._restores)
        return records if limit is None else records[: max(limit, 0)]
