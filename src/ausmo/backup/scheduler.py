"""Backup scheduling: next-run computation and background timer threads."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from dateutil.relativedelta import relativedelta

from .config import BackupConfiguration, BackupFrequency

logger = logging.getLogger(__name__)

# Grace period on top of the nominal cadence before a backup counts as missed
_HEALTH_GRACE = timedelta(hours=1)

_INTERVALS = {
    BackupFrequency.DAILY: timedelta(days=1),
    BackupFrequency.WEEKLY: timedelta(days=7),
    BackupFrequency.MONTHLY: timedelta(days=31),
}


def expected_interval(frequency: BackupFrequency) -> timedelta:
    return _INTERVALS[frequency]


def health_threshold(frequency: BackupFrequency) -> timedelta:
    """Maximum age of the last successful backup before an alert (daily: 25h)."""
    return expected_interval(frequency) + _HEALTH_GRACE


def compute_next_run(
    configuration: BackupConfiguration,
    now: datetime,
    last_backup_at: Optional[datetime] = None,
) -> Optional[datetime]:
    """Next time an automated backup is due, or None when disabled.

    The configured time today, or tomorrow when that is not strictly after
    ``now``. Weekly and monthly schedules also wait until a week or a
    calendar month after the last successful backup.
    """
    if not configuration.enabled:
        return None

    candidate = now.replace(
        hour=configuration.hour, minute=configuration.minute, second=0, microsecond=0
    )
    if candidate <= now:
        candidate += timedelta(days=1)

    if last_backup_at is not None and configuration.frequency != BackupFrequency.DAILY:
        if now.tzinfo is not None and last_backup_at.tzinfo is not None:
            last_backup_at = last_backup_at.astimezone(now.tzinfo)
        if configuration.frequency == BackupFrequency.WEEKLY:
            earliest = last_backup_at + timedelta(days=7)
        else:
            earliest = last_backup_at + relativedelta(months=1)
        earliest = earliest.replace(
            hour=configuration.hour, minute=configuration.minute, second=0, microsecond=0
        )
        if earliest > candidate:
            candidate = earliest

    return candidate


class BackupScheduler:
    """Runs automated backups on a daemon thread.

    Sleeps on an event until the next deadline so ``reschedule()`` and
    ``stop()`` take effect immediately.
    """

    def __init__(
        self,
        run_backup: Callable[[], object],
        next_run: Callable[[], Optional[datetime]],
        clock: Callable[[], datetime],
    ) -> None:
        self._run_backup = run_backup
        self._next_run = next_run
        self._clock = clock
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.next_run_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Backup scheduler already running")
            return
        self._stopped.clear()
        self._wake.clear()
        self._thread = threading.Thread(
            target=self._loop, name="ausmo-backup-scheduler", daemon=True
        )
        self._thread.start()

    def reschedule(self) -> None:
        self._wake.set()

    def stop(self, timeout: float = 5.0) -> None:
        self._stopped.set()
        self._wake.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None
        self.next_run_at = None

    def _loop(self) -> None:
        while not self._stopped.is_set():
            self.next_run_at = self._next_run()
            if self.next_run_at is None:
                logger.info("Automated backups disabled; scheduler idle")
                self._wake.wait()
                self._wake.clear()
                continue

            logger.info("Next automated backup at %s", self.next_run_at.isoformat())
            if self._wait_until(self.next_run_at):
                continue
            if self._stopped.is_set():
                break

            try:
                self._run_backup()
            except Exception:
                # Already recorded in the ledger and reported
                logger.exception("Automated backup failed")

    def _wait_until(self, deadline: datetime) -> bool:
        """Block until the clock reaches ``deadline``. True when woken first."""
        while True:
            delay = (deadline - self._clock()).total_seconds()
            if delay <= 0:
                return False
            # Event timeouts are monotonic; the deadline is wall-clock.
            if self._wake.wait(timeout=delay):
                self._wake.clear()
                return True


class HealthMonitor:
    """Calls ``check`` every ``interval_seconds`` on a daemon thread."""

    def __init__(self, check: Callable[[], object], interval_seconds: float = 3600.0) -> None:
        self._check = check
        self.interval_seconds = interval_seconds
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._loop, name="ausmo-health-monitor", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stopped.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

    def _loop(self) -> None:
        while not self._stopped.wait(self.interval_seconds):
            try:
                self._check()
            except Exception:
                logger.exception("Backup health check failed")
