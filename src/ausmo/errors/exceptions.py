"""Custom Exception Hierarchy.

Typed exceptions for every failure mode of the resilience subsystem.
All of them derive from ``ResilienceError`` so callers can catch the
whole family in one place.
"""

from typing import Any, Dict, List, Optional

from ausmo.errors.config import ERROR_SEVERITY_MAP, ErrorCode, ErrorSeverity


class ResilienceError(Exception):
    """Base exception for all backup, recovery and crypto errors."""

    default_code: ErrorCode = ErrorCode.CONFIGURATION_INVALID

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or []

    @property
    def severity(self) -> ErrorSeverity:
        return ERROR_SEVERITY_MAP.get(self.error_code, ErrorSeverity.HIGH)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "code": self.error_code.value,
            "message": self.message,
            "severity": self.severity.value,
            "details": list(self.details),
        }


class ConfigurationError(ResilienceError):
    """Raised for an invalid schedule, category or configuration value."""

    def __init__(self, message: str = "Invalid configuration", field: Optional[str] = None):
        details = [{"field": field, "issue": message}] if field else None
        super().__init__(message, ErrorCode.CONFIGURATION_INVALID, details)
        self.field = field


class NotFoundError(ResilienceError):
    """Raised when a backup or recovery plan does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
    ):
        details = []
        if resource_type or resource_id:
            details = [{"resource_type": resource_type, "resource_id": resource_id}]
        super().__init__(message, ErrorCode.RESOURCE_NOT_FOUND, details)


class OperationInProgressError(ResilienceError):
    """Raised when a second backup or restore starts while one is running."""

    def __init__(self, operation: str):
        super().__init__(
            f"{operation.capitalize()} already in progress",
            ErrorCode.OPERATION_IN_PROGRESS,
            [{"operation": operation}],
        )
        self.operation = operation


class ServiceUnavailableError(ResilienceError):
    """Raised when the orchestrator is not initialized or has been shut down."""

    def __init__(self, message: str = "Backup service is not running"):
        super().__init__(message, ErrorCode.SERVICE_UNAVAILABLE)


class CaptureError(ResilienceError):
    """Raised when every configured domain collector failed."""

    def __init__(self, message: str, failed_domains: Optional[Dict[str, str]] = None):
        details = [
            {"domain": domain, "error": error}
            for domain, error in (failed_domains or {}).items()
        ]
        super().__init__(message, ErrorCode.CAPTURE_FAILED, details)
        self.failed_domains = dict(failed_domains or {})


class PersistenceError(ResilienceError):
    """Raised on a local write, read or delete failure."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, ErrorCode.PERSISTENCE_FAILED, [{"path": path}] if path else None)
        self.path = path


class UploadError(ResilienceError):
    """Raised when a remote upload fails or the provider is unavailable."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, ErrorCode.UPLOAD_FAILED, [{"provider": provider}] if provider else None)
        self.provider = provider


class IntegrityError(ResilienceError):
    """Raised when a stored snapshot fails checksum or structural checks."""

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
    ):
        details = None
        if expected is not None or actual is not None:
            details = [{"expected": expected, "actual": actual}]
        super().__init__(message, ErrorCode.INTEGRITY_CHECK_FAILED, details)


class PlanConfigurationError(ResilienceError):
    """Raised when a recovery plan has a cyclic or missing step dependency."""

    def __init__(self, message: str, plan_id: Optional[str] = None, step_ids: Optional[List[str]] = None):
        details = [{"plan_id": plan_id, "unresolved_steps": list(step_ids or [])}]
        super().__init__(message, ErrorCode.PLAN_INVALID, details)
        self.plan_id = plan_id
        self.step_ids = list(step_ids or [])


class StepExecutionError(ResilienceError):
    """Raised when a critical recovery step fails after exhausting retries."""

    def __init__(self, step_id: str, message: str, attempts: int = 1):
        super().__init__(
            f"Step '{step_id}' failed after {attempts} attempt(s): {message}",
            ErrorCode.STEP_FAILED,
            [{"step_id": step_id, "attempts": attempts, "error": message}],
        )
        self.step_id = step_id
        self.attempts = attempts


class EncryptionError(ResilienceError):
    """Raised when encrypting a record fails."""

    def __init__(self, message: str = "Failed to encrypt sensitive data"):
        super().__init__(message, ErrorCode.ENCRYPTION_FAILED)


class DecryptionError(ResilienceError):
    """Raised when a record cannot be decrypted or authenticated."""

    def __init__(self, message: str = "Failed to decrypt sensitive data"):
        super().__init__(message, ErrorCode.DECRYPTION_FAILED)


class BackupHealthAlert(ResilienceError):
    """Reported (not raised) when backups are stale or failing too often."""

    def __init__(self, message: str, check: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.BACKUP_UNHEALTHY, [{"check": check, **(details or {})}])
        self.check = check
