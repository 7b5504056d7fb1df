"""Backup & Disaster Recovery: Health checks and metrics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from ausmo.errors import BackupHealthAlert
from ausmo.observability import NullSink, ObservabilitySink

from .config import (
    RECOVERY_POINT_OBJECTIVE,
    RECOVERY_TIME_OBJECTIVE,
    BackupFrequency,
    BackupStatus,
)
from .ledger import BackupMetadata
from .scheduler import expected_interval, health_threshold

logger = logging.getLogger(__name__)

MIN_SUCCESS_RATE = 0.9


@dataclass
class DisasterRecoveryMetrics:
    """Derived view over the ledger; never stored."""

    total_backups: int = 0
    successful_backups: int = 0
    failed_backups: int = 0
    average_backup_duration_seconds: float = 0.0
    total_data_size: int = 0
    last_backup_date: Optional[datetime] = None
    next_scheduled_backup: Optional[datetime] = None
    recovery_time_objective: timedelta = RECOVERY_TIME_OBJECTIVE
    recovery_point_objective: timedelta = RECOVERY_POINT_OBJECTIVE

    @property
    def success_rate(self) -> float:
        finished = self.successful_backups + self.failed_backups
        return self.successful_backups / finished if finished else 1.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_backups": self.total_backups,
            "successful_backups": self.successful_backups,
            "failed_backups": self.failed_backups,
            "success_rate": round(self.success_rate, 4),
            "average_backup_duration_seconds": round(self.average_backup_duration_seconds, 3),
            "total_data_size": self.total_data_size,
            "last_backup_date": self.last_backup_date.isoformat() if self.last_backup_date else None,
            "next_scheduled_backup": (
                self.next_scheduled_backup.isoformat() if self.next_scheduled_backup else None
            ),
            "recovery_time_objective_minutes": self.recovery_time_objective.total_seconds() / 60,
            "recovery_point_objective_hours": self.recovery_point_objective.total_seconds() / 3600,
        }


def compute_metrics(
    entries: Sequence[BackupMetadata],
    next_scheduled: Optional[datetime] = None,
) -> DisasterRecoveryMetrics:
    completed = [m for m in entries if m.status == BackupStatus.COMPLETED]
    failed = [m for m in entries if m.status == BackupStatus.FAILED]
    return DisasterRecoveryMetrics(
        total_backups=len(entries),
        successful_backups=len(completed),
        failed_backups=len(failed),
        average_backup_duration_seconds=(
            sum(m.duration_seconds for m in completed) / len(completed) if completed else 0.0
        ),
        total_data_size=sum(m.size for m in completed),
        last_backup_date=max((m.timestamp for m in completed), default=None),
        next_scheduled_backup=next_scheduled,
    )


@dataclass
class HealthReport:
    """Result of one health check."""

    checked_at: datetime
    healthy: bool
    alerts: list[BackupHealthAlert]
    stale_backups_failed: list[str]
    success_rate: float
    last_backup_age: Optional[timedelta] = None


class BackupMonitor:
    """Raises alerts when backups are overdue or failing too often.

    Alerts go to the observability sink; nothing is retried.
    """

    def __init__(
        self,
        observability: Optional[ObservabilitySink] = None,
        min_success_rate: float = MIN_SUCCESS_RATE,
    ) -> None:
        self.observability = observability or NullSink()
        self.min_success_rate = min_success_rate

    def check(
        self,
        entries: Sequence[BackupMetadata],
        now: datetime,
        frequency: BackupFrequency,
        monitoring_since: datetime,
        stale_backups_failed: Optional[list[str]] = None,
    ) -> HealthReport:
        metrics = compute_metrics(entries)
        alerts: list[BackupHealthAlert] = []
        threshold = health_threshold(frequency)

        age: Optional[timedelta] = None
        if metrics.last_backup_date is not None:
            age = now - metrics.last_backup_date
            if age > threshold:
                alerts.append(BackupHealthAlert(
                    "Backup schedule missed",
                    check="recency",
                    details={
                        "last_backup_age_seconds": age.total_seconds(),
                        "max_age_seconds": threshold.total_seconds(),
                    },
                ))
        elif now - monitoring_since > expected_interval(frequency):
            alerts.append(BackupHealthAlert(
                "No successful backup recorded",
                check="recency",
                details={"monitoring_since": monitoring_since.isoformat()},
            ))

        rate = metrics.success_rate
        if rate < self.min_success_rate:
            alerts.append(BackupHealthAlert(
                "Low backup success rate",
                check="success_rate",
                details={
                    "success_rate": round(rate, 4),
                    "successful_backups": metrics.successful_backups,
                    "total_backups": metrics.total_backups,
                },
            ))

        for alert in alerts:
            logger.warning("Backup health alert: %s", alert.message)
            self.observability.report_error(alert, {"context": "backup_health", **alert.details[0]})

        return HealthReport(
            checked_at=now,
            healthy=not alerts,
            alerts=alerts,
            stale_backups_failed=list(stale_backups_failed or []),
            success_rate=rate,
            last_backup_age=age,
        )
