"""Error taxonomy for the backup, recovery and encryption subsystem."""

from ausmo.errors.config import ERROR_SEVERITY_MAP, ErrorCode, ErrorSeverity
from ausmo.errors.exceptions import (
    BackupHealthAlert,
    CaptureError,
    ConfigurationError,
    DecryptionError,
    EncryptionError,
    IntegrityError,
    NotFoundError,
    OperationInProgressError,
    PersistenceError,
    PlanConfigurationError,
    ResilienceError,
    ServiceUnavailableError,
    StepExecutionError,
    UploadError,
)

__all__ = [
    # Config
    "ERROR_SEVERITY_MAP",
    "ErrorCode",
    "ErrorSeverity",
    # Exceptions
    "BackupHealthAlert",
    "CaptureError",
    "ConfigurationError",
    "DecryptionError",
    "EncryptionError",
    "IntegrityError",
    "NotFoundError",
    "OperationInProgressError",
    "PersistenceError",
    "PlanConfigurationError",
    "ResilienceError",
    "ServiceUnavailableError",
    "StepExecutionError",
    "UploadError",
]
