"""Backup & Disaster Recovery.

Scheduled snapshots of the app's data domains, checksum verification,
dependency-ordered recovery plans and backup health monitoring.
"""

from .capture import DomainDataProvider, SnapshotCapture, SnapshotDocument
from .config import (
    RECOVERY_POINT_OBJECTIVE,
    RECOVERY_TIME_OBJECTIVE,
    SCHEMA_VERSION,
    BackupConfiguration,
    BackupFrequency,
    BackupKind,
    BackupStatus,
    DataDomain,
    VerificationStatus,
)
from .export import ExportFormat, SnapshotExporter
from .integrity import (
    canonical_json,
    checksum_document,
    compute_checksum,
    verify_checksum,
    verify_structure,
)
from .ledger import BackupLedger, BackupMetadata, RestoreRecord
from .monitoring import BackupMonitor, DisasterRecoveryMetrics, HealthReport, compute_metrics
from .orchestrator import BackupOrchestrator
from .recovery import (
    NullRecoveryHooks,
    PlanExecution,
    RecoveryEngineConfig,
    RecoveryHooks,
    RecoveryPlan,
    RecoveryPlanEngine,
    RecoveryStep,
    RecoveryTestResult,
    RestoreOptions,
    StepPriority,
    StepType,
    build_cache_reset_plan,
    build_standard_plan,
)
from .scheduler import BackupScheduler, HealthMonitor, compute_next_run, health_threshold
from .store import BackupStore

__all__ = [
    # Config
    "RECOVERY_POINT_OBJECTIVE",
    "RECOVERY_TIME_OBJECTIVE",
    "SCHEMA_VERSION",
    "BackupConfiguration",
    "BackupFrequency",
    "BackupKind",
    "BackupStatus",
    "DataDomain",
    "VerificationStatus",
    # Capture & store
    "DomainDataProvider",
    "SnapshotCapture",
    "SnapshotDocument",
    "BackupStore",
    # Integrity
    "canonical_json",
    "checksum_document",
    "compute_checksum",
    "verify_checksum",
    "verify_structure",
    # Ledger
    "BackupLedger",
    "BackupMetadata",
    "RestoreRecord",
    # Recovery
    "NullRecoveryHooks",
    "PlanExecution",
    "RecoveryEngineConfig",
    "RecoveryHooks",
    "RecoveryPlan",
    "RecoveryPlanEngine",
    "RecoveryStep",
    "RecoveryTestResult",
    "RestoreOptions",
    "StepPriority",
    "StepType",
    "build_cache_reset_plan",
    "build_standard_plan",
    # Monitoring & scheduling
    "BackupMonitor",
    "DisasterRecoveryMetrics",
    "HealthReport",
    "compute_metrics",
    "BackupScheduler",
    "HealthMonitor",
    "compute_next_run",
    "health_threshold",
    # Export
    "ExportFormat",
    "SnapshotExporter",
    # Orchestrator
    "BackupOrchestrator",
]
