"""Backup & Disaster Recovery: Orchestrator.

Top-level controller and public API. Owns the backup configuration,
runs manual and automated backups, restores snapshots through the
recovery plan engine, and runs the scheduler and health monitor.

Example:
    orchestrator = BackupOrchestrator.from_settings(provider=app_data)
    orchestrator.initialize()
    metadata = orchestrator.create_manual_backup("before upgrade")
    orchestrator.restore_from_backup(metadata.id)
    orchestrator.cleanup()
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional

from ausmo.errors import (
    ConfigurationError,
    ErrorSeverity,
    IntegrityError,
    NotFoundError,
    OperationInProgressError,
    PersistenceError,
    ResilienceError,
    ServiceUnavailableError,
    UploadError,
)
from ausmo.logging_config import OperationContext, PerformanceTimer, configure_logging
from ausmo.observability import NullSink, ObservabilitySink
from ausmo.privacy import DataRetentionPolicy, PrivacyDataGateway, PrivacyManager, RetentionPolicyTable
from ausmo.security import EncryptedRecord, EncryptionConfig, EncryptionEngine
from ausmo.settings import Settings, get_settings
from ausmo.storage import (
    KeyValueStore,
    LocalFileStore,
    RemoteUploader,
    SqlKeyValueStore,
)

from .capture import Collector, DomainDataProvider, SnapshotCapture, SnapshotDocument
from .config import (
    CONFIGURATION_KEY,
    SCHEMA_VERSION,
    BackupConfiguration,
    BackupStatus,
    DataDomain,
    VerificationStatus,
)
from .export import SnapshotExporter
from .integrity import canonical_json, compute_checksum, verify_checksum, verify_structure
from .ledger import BackupLedger, BackupMetadata, RestoreRecord, generate_backup_id
from .monitoring import BackupMonitor, DisasterRecoveryMetrics, HealthReport, compute_metrics
from .recovery import (
    RecoveryEngineConfig,
    RecoveryHooks,
    RecoveryPlan,
    RecoveryPlanEngine,
    RecoveryTestResult,
    RestoreOptions,
)
from .scheduler import BackupScheduler, HealthMonitor, compute_next_run
from .store import BackupStore

logger = logging.getLogger(__name__)

ENCRYPTED_SNAPSHOT_FORMAT = "ausmo-encrypted-snapshot"
SNAPSHOT_CATEGORY = "backup_snapshot"
RESTORE_PLAN_ID = "standard"


def _local_now() -> datetime:
    return datetime.now().astimezone()


class BackupOrchestrator:
    """Coordinates capture, storage, verification, restore and monitoring.

    Construct one per process, call ``initialize()`` before use and
    ``cleanup()`` on shutdown or logout. At most one backup and one
    restore run at a time; a second caller gets ``OperationInProgressError``.
    """

    def __init__(
        self,
        capture: SnapshotCapture,
        store: BackupStore,
        ledger: BackupLedger,
        kv_store: KeyValueStore,
        encryption: EncryptionEngine,
        recovery: Optional[RecoveryPlanEngine] = None,
        privacy: Optional[PrivacyManager] = None,
        observability: Optional[ObservabilitySink] = None,
        monitor: Optional[BackupMonitor] = None,
        exporter: Optional[SnapshotExporter] = None,
        clock: Optional[Callable[[], datetime]] = None,
        environment: str = "production",
        platform: str = "ios",
        user_id: Optional[str] = None,
        schema_version: str = SCHEMA_VERSION,
        health_check_interval_seconds: float = 3600.0,
        start_background_tasks: bool = True,
    ) -> None:
        self.capture = capture
        self.store = store
        self.ledger = ledger
        self.encryption = encryption
        self.observability = observability or NullSink()
        self.recovery = recovery or RecoveryPlanEngine(observability=self.observability)
        self.privacy = privacy or PrivacyManager(RetentionPolicyTable(), encryption, kv_store)
        self.monitor = monitor or BackupMonitor(self.observability)
        self.exporter = exporter or SnapshotExporter()
        self.environment = environment
        self.platform = platform
        self.user_id = user_id
        self.schema_version = schema_version
        self.start_background_tasks = start_background_tasks
        self._kv = kv_store
        self._clock = clock or _local_now

        self._configuration = BackupConfiguration()
        self._initialized = False
        self._monitoring_since: Optional[datetime] = None
        self._guard = threading.Lock()
        self._backup_in_progress = False
        self._recovery_in_progress = False

        self._scheduler = BackupScheduler(
            run_backup=self.run_automated_backup,
            next_run=self.next_scheduled_backup,
            clock=self._clock,
        )
        self._health_monitor = HealthMonitor(
            self.check_backup_health, interval_seconds=health_check_interval_seconds
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        provider: Optional[DomainDataProvider] = None,
        collectors: Optional[Mapping[DataDomain, Collector]] = None,
        hooks: Optional[RecoveryHooks] = None,
        uploader: Optional[RemoteUploader] = None,
        observability: Optional[ObservabilitySink] = None,
        gateway: Optional[PrivacyDataGateway] = None,
        install_logging: bool = True,
        **kwargs: Any,
    ) -> "BackupOrchestrator":
        """Wire the default SQLite and local-file collaborators from settings.

        Also installs the log handler described by ``settings`` unless
        ``install_logging`` is False (hosts that own logging setup).
        """
        settings = settings or get_settings()
        if install_logging:
            configure_logging(settings.logging_config())
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        observability = observability or NullSink()

        kv_store = SqlKeyValueStore(settings.resolved_database_url)
        if provider is not None:
            capture = SnapshotCapture.from_provider(provider, schema_version=settings.schema_version)
        else:
            capture = SnapshotCapture(collectors or {}, schema_version=settings.schema_version)
        encryption = EncryptionEngine(
            kv_store,
            EncryptionConfig(iterations=settings.pbkdf2_iterations),
            platform=settings.platform,
        )
        recovery = RecoveryPlanEngine(
            hooks=hooks,
            observability=observability,
            config=RecoveryEngineConfig(retry_backoff_scale=settings.step_retry_backoff_seconds),
        )
        return cls(
            capture=capture,
            store=BackupStore(LocalFileStore(settings.backups_dir), uploader),
            ledger=BackupLedger(kv_store),
            kv_store=kv_store,
            encryption=encryption,
            recovery=recovery,
            privacy=PrivacyManager(RetentionPolicyTable(), encryption, kv_store, gateway=gateway),
            observability=observability,
            environment=settings.environment,
            platform=settings.platform,
            schema_version=settings.schema_version,
            health_check_interval_seconds=settings.health_check_interval_seconds,
            **kwargs,
        )

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_backup_in_progress(self) -> bool:
        return self._backup_in_progress

    @property
    def is_recovery_in_progress(self) -> bool:
        return self._recovery_in_progress

    def initialize(self) -> None:
        """Load configuration and ledger, then start background tasks."""
        if self._initialized:
            return
        self._configuration = self._load_configuration()
        self.ledger.load()
        self._monitoring_since = self._clock()
        self._initialized = True
        if self.start_background_tasks:
            self._scheduler.start()
            self._health_monitor.start()
        logger.info(
            "Backup service initialized (enabled=%s, frequency=%s, time=%s)",
            self._configuration.enabled,
            self._configuration.frequency.value,
            self._configuration.time,
        )

    def cleanup(self) -> None:
        """Stop timers, clear in-flight flags and drop cached key material.

        Running I/O is not aborted; new operations are refused until the
        next ``initialize()``.
        """
        self._scheduler.stop()
        self._health_monitor.stop()
        with self._guard:
            self._initialized = False
            self._backup_in_progress = False
            self._recovery_in_progress = False
        self.encryption.clear_sensitive_data()
        logger.info("Backup service stopped")

    def _require_running(self) -> None:
        if not self._initialized:
            raise ServiceUnavailableError()

    def _acquire(self, operation: str) -> None:
        with self._guard:
            self._require_running()
            if operation == "backup":
                if self._backup_in_progress:
                    raise OperationInProgressError("backup")
                self._backup_in_progress = True
            else:
                if self._recovery_in_progress:
                    raise OperationInProgressError("recovery")
                self._recovery_in_progress = True

    def _release(self, operation: str) -> None:
        with self._guard:
            if operation == "backup":
                self._backup_in_progress = False
            else:
                self._recovery_in_progress = False

    # ── Configuration ────────────────────────────────────────────────

    def _load_configuration(self) -> BackupConfiguration:
        raw = self._kv.get(CONFIGURATION_KEY)
        if not raw:
            return BackupConfiguration()
        try:
            return BackupConfiguration().merged(json.loads(raw))
        except (ValueError, TypeError, ConfigurationError) as exc:
            logger.error("Stored backup configuration is invalid, using defaults: %s", exc)
            return BackupConfiguration()

    def configure(self, partial: Mapping[str, Any]) -> BackupConfiguration:
        """Apply a partial update, persist it and reschedule."""
        self._require_running()
        updated = self._configuration.merged(partial)
        self._kv.set(CONFIGURATION_KEY, json.dumps(updated.to_dict()))
        self._configuration = updated
        self._scheduler.reschedule()
        logger.info("Backup configuration updated: %s", sorted(partial))
        return updated

    def get_configuration(self) -> BackupConfiguration:
        return self._configuration

    def next_scheduled_backup(self) -> Optional[datetime]:
        last = self.ledger.last_successful()
        return compute_next_run(
            self._configuration, self._clock(), last.timestamp if last else None
        )

    # ── Backup ───────────────────────────────────────────────────────

    def create_manual_backup(self, description: Optional[str] = None) -> BackupMetadata:
        """Run a backup now and return its completed metadata.

        Raises the underlying error (after recording the attempt as failed)
        when capture, persistence or verification fails.
        """
        return self._run_backup(description or "Manual backup")

    def run_automated_backup(self) -> BackupMetadata:
        return self._run_backup("Automated backup")

    def _run_backup(self, description: str) -> BackupMetadata:
        self._acquire("backup")
        try:
            with OperationContext(user_id=self.user_id or "", extra={"operation": "backup"}) as ctx:
                with PerformanceTimer("backup"):
                    return self._perform_backup(description, ctx)
        finally:
            self._release("backup")

    def _perform_backup(self, description: str, ctx: OperationContext) -> BackupMetadata:
        configuration = self._configuration
        now = self._clock()
        metadata = BackupMetadata(
            id=generate_backup_id(now),
            timestamp=now,
            version=self.schema_version,
            environment=self.environment,
            platform=self.platform,
            user_id=self.user_id,
            description=description,
            encrypted=configuration.encryption_enabled,
        )
        ctx.bind(backup_id=metadata.id)
        self.ledger.append(metadata)
        self.observability.add_breadcrumb(
            "Backup started", category="backup", data={"backup_id": metadata.id}
        )
        started = time.perf_counter()

        try:
            document = self.capture.collect(configuration)
            plaintext = canonical_json(document.to_dict())
            metadata.checksum = compute_checksum(plaintext)
            blob = self._seal(plaintext) if configuration.encryption_enabled else plaintext
            metadata.size = len(blob)

            # The local copy is the restore source and is always written.
            self.store.save(metadata.id, blob)
            if configuration.cloud_backup:
                self._upload(metadata, blob)

            self._apply_retention(configuration, now, keep=metadata.id)
            self._verify(metadata)
        except Exception as exc:
            metadata.status = BackupStatus.FAILED
            metadata.error = str(exc)
            if isinstance(exc, IntegrityError):
                metadata.verification_status = VerificationStatus.FAILED
            metadata.duration_seconds = time.perf_counter() - started
            self.ledger.update(metadata)
            logger.error("Backup %s failed: %s", metadata.id, exc)
            self._report(exc, backup_id=metadata.id, operation="backup")
            raise

        metadata.status = BackupStatus.COMPLETED
        metadata.verification_status = VerificationStatus.VERIFIED
        metadata.duration_seconds = time.perf_counter() - started
        self.ledger.update(metadata)
        logger.info("Backup %s completed (%d bytes)", metadata.id, metadata.size)
        self.observability.add_breadcrumb(
            "Backup completed",
            category="backup",
            data={"backup_id": metadata.id, "size": metadata.size},
        )
        return metadata

    def _upload(self, metadata: BackupMetadata, blob: bytes) -> None:
        try:
            metadata.remote_reference = self.store.upload_remote(metadata.id, blob)
        except UploadError as exc:
            metadata.upload_error = exc.message
            logger.warning("Upload of backup %s failed, local copy kept: %s", metadata.id, exc)
            self.observability.add_breadcrumb(
                "Backup upload failed",
                category="backup",
                level="warning",
                data={"backup_id": metadata.id, "error": exc.message},
            )

    def _apply_retention(self, configuration: BackupConfiguration, now: datetime, keep: str) -> None:
        cutoff = now - timedelta(days=configuration.retention_days)
        for expired in self.ledger.older_than(cutoff):
            if expired.id == keep:
                continue
            try:
                if self.store.exists(expired.id):
                    self.store.delete(expired.id)
            except PersistenceError as exc:
                logger.warning("Could not delete expired backup %s: %s", expired.id, exc)
                continue
            self.ledger.remove(expired.id)
            logger.info("Removed expired backup %s", expired.id)

    def _verify(self, metadata: BackupMetadata) -> None:
        """Reload the stored snapshot, compare checksums and check its structure."""
        plaintext = self._open(self.store.load(metadata.id))
        verify_checksum(plaintext, metadata.checksum)
        verify_structure(self._decode(plaintext))

    # ── Snapshot envelope ────────────────────────────────────────────

    def _seal(self, plaintext: bytes) -> bytes:
        record = self.encryption.encrypt(plaintext.decode("utf-8"), SNAPSHOT_CATEGORY)
        return json.dumps(
            {"format": ENCRYPTED_SNAPSHOT_FORMAT, "record": record.to_dict()}
        ).encode("utf-8")

    def _open(self, blob: bytes) -> bytes:
        envelope = self._decode(blob)
        if not (isinstance(envelope, dict) and envelope.get("format") == ENCRYPTED_SNAPSHOT_FORMAT):
            return blob
        text = self.encryption.decrypt(EncryptedRecord.from_dict(envelope["record"]), SNAPSHOT_CATEGORY)
        if not isinstance(text, str):
            raise IntegrityError("Encrypted snapshot has an unexpected payload")
        return text.encode("utf-8")

    @staticmethod
    def _decode(payload: bytes) -> Any:
        try:
            return json.loads(payload)
        except (UnicodeDecodeError, ValueError) as exc:
            raise IntegrityError("Snapshot is not valid JSON") from exc

    def _load_snapshot(self, metadata: BackupMetadata, verify: bool = True) -> SnapshotDocument:
        plaintext = self._open(self.store.load(metadata.id))
        if verify:
            verify_checksum(plaintext, metadata.checksum)
        document = self._decode(plaintext)
        verify_structure(document)
        return SnapshotDocument.from_dict(document)

    def _report(self, exc: Exception, **context: Any) -> None:
        severity = exc.severity if isinstance(exc, ResilienceError) else ErrorSeverity.HIGH
        self.observability.report_error(exc, {**context, "severity": severity.value})

    def _get_metadata(self, backup_id: str) -> BackupMetadata:
        metadata = self.ledger.get(backup_id)
        if metadata is None:
            raise NotFoundError(
                f"Backup {backup_id} not found", resource_type="backup", resource_id=backup_id
            )
        return metadata

    # ── Restore ──────────────────────────────────────────────────────

    def restore_from_backup(self, backup_id: str, options: Optional[RestoreOptions] = None) -> bool:
        """Restore a completed backup through the standard recovery plan.

        Integrity is checked before any recovery step runs, so a corrupted
        snapshot never leads to a partial restore. Returns True on success
        and raises on failure.
        """
        options = options or RestoreOptions()
        self._acquire("recovery")
        try:
            with OperationContext(
                user_id=self.user_id or "",
                extra={"operation": "restore", "backup_id": backup_id},
            ):
                with PerformanceTimer("restore"):
                    return self._perform_restore(backup_id, options)
        finally:
            self._release("recovery")

    def _perform_restore(self, backup_id: str, options: RestoreOptions) -> bool:
        metadata = self._get_metadata(backup_id)
        if metadata.status != BackupStatus.COMPLETED:
            raise IntegrityError(
                f"Backup {backup_id} is {metadata.status.value}; only completed backups can be restored"
            )

        record = RestoreRecord(
            id=f"restore_{uuid.uuid4().hex[:12]}",
            backup_id=backup_id,
            plan_id=RESTORE_PLAN_ID,
            started_at=self._clock(),
        )
        self.ledger.record_restore(record)
        self.observability.add_breadcrumb(
            "Restore started", category="restore", data={"backup_id": backup_id}
        )

        try:
            snapshot = self._load_snapshot(metadata, verify=options.verify_integrity)
            plan = self.recovery.get_plan(RESTORE_PLAN_ID)
            execution = self.recovery.execute(plan, snapshot, options)
        except Exception as exc:
            record.status = BackupStatus.FAILED
            record.error = str(exc)
            record.completed_at = self._clock()
            self.ledger.record_restore(record)
            logger.error("Restore from %s failed: %s", backup_id, exc)
            self._report(exc, backup_id=backup_id, operation="restore")
            raise

        record.status = BackupStatus.COMPLETED
        record.completed_at = self._clock()
        record.warnings = list(execution.warnings)
        record.skipped_steps = list(execution.skipped)
        self.ledger.record_restore(record)
        logger.info(
            "Restore from %s completed (%d warnings)", backup_id, len(execution.warnings)
        )
        return True

    # ── History & maintenance ────────────────────────────────────────

    def get_backup_history(self, limit: int = 10) -> list[BackupMetadata]:
        return self.ledger.history(limit)

    def get_restore_history(self, limit: int = 10) -> list[RestoreRecord]:
        return self.ledger.restore_history(limit)

    def delete_backup(self, backup_id: str) -> None:
        """Delete a backup's blob and its ledger entry."""
        self._require_running()
        metadata = self._get_metadata(backup_id)
        if metadata.status == BackupStatus.IN_PROGRESS and self._backup_in_progress:
            raise OperationInProgressError("backup")
        if self.store.exists(backup_id):
            self.store.delete(backup_id)
        self.ledger.remove(backup_id)
        logger.info("Deleted backup %s", backup_id)

    def export_backup(self, backup_id: str, fmt: str = "json") -> str:
        """Render a stored, verified snapshot as json, csv or xml."""
        self._require_running()
        metadata = self._get_metadata(backup_id)
        snapshot = self._load_snapshot(metadata)
        return self.exporter.render(snapshot, fmt)

    # ── Recovery plans ───────────────────────────────────────────────

    def get_recovery_plans(self) -> list[RecoveryPlan]:
        return self.recovery.plans()

    def get_recovery_plan(self, plan_id: str) -> RecoveryPlan:
        return self.recovery.get_plan(plan_id)

    def register_recovery_plan(self, plan: RecoveryPlan) -> None:
        self.recovery.register_plan(plan)

    def test_recovery_plan(self, plan_id: str) -> RecoveryTestResult:
        self._require_running()
        plan = self.recovery.get_plan(plan_id)
        with OperationContext(extra={"operation": "test_recovery_plan", "plan_id": plan_id}):
            return self.recovery.test_plan(plan)

    # ── Monitoring ───────────────────────────────────────────────────

    def get_backup_metrics(self) -> DisasterRecoveryMetrics:
        return compute_metrics(self.ledger.history(), self.next_scheduled_backup())

    def check_backup_health(self) -> HealthReport:
        """Fail interrupted attempts, then check recency and success rate."""
        self._require_running()
        stale = self._fail_stale_attempts()
        return self.monitor.check(
            self.ledger.history(),
            now=self._clock(),
            frequency=self._configuration.frequency,
            monitoring_since=self._monitoring_since or self._clock(),
            stale_backups_failed=stale,
        )

    def _fail_stale_attempts(self) -> list[str]:
        with self._guard:
            if self._backup_in_progress:
                return []
            stale = [m for m in self.ledger.history() if m.status == BackupStatus.IN_PROGRESS]
            for metadata in stale:
                metadata.status = BackupStatus.FAILED
                metadata.error = "interrupted before completion"
                self.ledger.update(metadata)
                logger.warning("Marked interrupted backup %s as failed", metadata.id)
        return [m.id for m in stale]

    # ── Sensitive data ───────────────────────────────────────────────

    def encrypt_sensitive_data(self, data: Any, category: str) -> EncryptedRecord:
        self._require_running()
        return self.encryption.encrypt(data, category)

    def decrypt_sensitive_data(self, record: EncryptedRecord, category: str) -> Any:
        self._require_running()
        return self.encryption.decrypt(record, category)

    def get_retention_policy(self, category: str) -> DataRetentionPolicy:
        return self.privacy.retention.get_policy(category)

    def generate_data_export(self, user_id: str, categories: Iterable[str]) -> dict[str, Any]:
        self._require_running()
        return self.privacy.generate_data_export(user_id, categories)

    def secure_data_deletion(self, user_id: str, categories: Iterable[str]) -> dict[str, Any]:
        self._require_running()
        return self.privacy.secure_data_deletion(user_id, categories)

    def generate_privacy_report(self, user_id: str) -> dict[str, Any]:
        return self.privacy.generate_privacy_report(user_id)

    def validate_data_compliance(self, category: str, data: Any) -> bool:
        return self.privacy.validate_data_compliance(category, data)

    def cleanup_expired_data(
        self, records_by_category: Mapping[str, Iterable[Mapping[str, Any]]]
    ) -> dict[str, list[Mapping[str, Any]]]:
        """Apply retention auto-delete to host records; returns what to keep."""
        return self.privacy.cleanup_expired_data(
            {category: list(records) for category, records in records_by_category.items()},
            now=self._clock(),
        )

    def get_encryption_status(self) -> dict[str, Any]:
        return self.encryption.get_status()
