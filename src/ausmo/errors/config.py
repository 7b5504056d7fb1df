"""Error Configuration.

Error codes and severity levels shared by every failure raised from the
backup, recovery and encryption layers.
"""

from enum import Enum
from typing import Dict


class ErrorCode(Enum):
    """Machine-readable error codes."""

    # Caller / configuration errors
    CONFIGURATION_INVALID = "CONFIGURATION_INVALID"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    OPERATION_IN_PROGRESS = "OPERATION_IN_PROGRESS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Backup pipeline errors
    CAPTURE_FAILED = "CAPTURE_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    INTEGRITY_CHECK_FAILED = "INTEGRITY_CHECK_FAILED"
    BACKUP_UNHEALTHY = "BACKUP_UNHEALTHY"

    # Recovery errors
    PLAN_INVALID = "PLAN_INVALID"
    STEP_FAILED = "STEP_FAILED"

    # Crypto errors
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"


class ErrorSeverity(Enum):
    """Severity levels used when reporting to observability."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.CONFIGURATION_INVALID: ErrorSeverity.LOW,
    ErrorCode.RESOURCE_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.OPERATION_IN_PROGRESS: ErrorSeverity.LOW,
    ErrorCode.SERVICE_UNAVAILABLE: ErrorSeverity.MEDIUM,
    ErrorCode.CAPTURE_FAILED: ErrorSeverity.HIGH,
    ErrorCode.PERSISTENCE_FAILED: ErrorSeverity.CRITICAL,
    ErrorCode.UPLOAD_FAILED: ErrorSeverity.MEDIUM,
    ErrorCode.INTEGRITY_CHECK_FAILED: ErrorSeverity.CRITICAL,
    ErrorCode.BACKUP_UNHEALTHY: ErrorSeverity.HIGH,
    ErrorCode.PLAN_INVALID: ErrorSeverity.HIGH,
    ErrorCode.STEP_FAILED: ErrorSeverity.HIGH,
    ErrorCode.ENCRYPTION_FAILED: ErrorSeverity.CRITICAL,
    ErrorCode.DECRYPTION_FAILED: ErrorSeverity.CRITICAL,
}
