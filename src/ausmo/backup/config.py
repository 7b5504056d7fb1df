"""Backup & Disaster Recovery: Configuration."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, fields
from datetime import timedelta
from enum import Enum
from typing import Any, Mapping

from ausmo.errors import ConfigurationError

SCHEMA_VERSION = "1.0.0"

# Fixed recovery objectives
RECOVERY_TIME_OBJECTIVE = timedelta(minutes=30)
RECOVERY_POINT_OBJECTIVE = timedelta(hours=24)

CONFIGURATION_KEY = "backup_configuration"
HISTORY_KEY = "backup_history"
RESTORE_HISTORY_KEY = "restore_history"

BACKUP_NAMESPACE = "backups"

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class BackupFrequency(str, Enum):
    """How often automated backups run."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BackupKind(str, Enum):
    """Snapshot kind. Only full snapshots are produced."""

    FULL = "full"
    INCREMENTAL = "incremental"
    DIFFERENTIAL = "differential"


class BackupStatus(str, Enum):
    """Status of a backup attempt."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class VerificationStatus(str, Enum):
    """Result of post-backup verification."""

    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


class DataDomain(str, Enum):
    """Data domains captured into a snapshot."""

    USERS = "users"
    COMMUNICATION = "communication"
    PROGRESS = "progress"
    SETTINGS = "settings"


@dataclass
class BackupConfiguration:
    """Global backup configuration for this device.

    Every snapshot is written to local storage, which is where restores
    read from. ``cloud_backup`` adds an upload on top of that;
    ``local_backup`` is kept for stored-configuration compatibility and
    at least one of the two must be set.
    """

    enabled: bool = True
    frequency: BackupFrequency = BackupFrequency.DAILY
    time: str = "02:00"
    include_user_data: bool = True
    include_communication_data: bool = True
    include_progress_data: bool = True
    include_settings: bool = True
    retention_days: int = 90
    local_backup: bool = True
    cloud_backup: bool = True
    encryption_enabled: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.frequency, BackupFrequency):
            try:
                self.frequency = BackupFrequency(self.frequency)
            except ValueError:
                raise ConfigurationError(
                    f"Unknown backup frequency '{self.frequency}'", field="frequency"
                ) from None
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.time, str) or not _TIME_PATTERN.match(self.time):
            raise ConfigurationError(
                f"Backup time must be HH:MM between 00:00 and 23:59, got '{self.time}'",
                field="time",
            )
        if isinstance(self.retention_days, bool) or not isinstance(self.retention_days, int):
            raise ConfigurationError("retention_days must be an integer", field="retention_days")
        if self.retention_days < 1:
            raise ConfigurationError("retention_days must be at least 1", field="retention_days")
        if self.enabled and not self.included_domains():
            raise ConfigurationError(
                "An enabled configuration must include at least one data domain",
                field="include_user_data",
            )
        if not (self.local_backup or self.cloud_backup):
            raise ConfigurationError(
                "A backup configuration needs local or cloud persistence",
                field="local_backup",
            )

    @property
    def hour(self) -> int:
        return int(self.time.split(":")[0])

    @property
    def minute(self) -> int:
        return int(self.time.split(":")[1])

    def included_domains(self) -> list[DataDomain]:
        flags = (
            (DataDomain.USERS, self.include_user_data),
            (DataDomain.COMMUNICATION, self.include_communication_data),
            (DataDomain.PROGRESS, self.include_progress_data),
            (DataDomain.SETTINGS, self.include_settings),
        )
        return [domain for domain, included in flags if included]

    def merged(self, partial: Mapping[str, Any]) -> "BackupConfiguration":
        """Return a new configuration with ``partial`` applied on top."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(partial) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(unknown)}", field=unknown[0]
            )
        values = self.to_dict()
        values.update(partial)
        return BackupConfiguration.from_dict(values)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["frequency"] = self.frequency.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BackupConfiguration":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(unknown)}", field=unknown[0]
            )
        return cls(**dict(data))
