"""Tests for the error taxonomy."""

import pytest

from ausmo.errors import (
    BackupHealthAlert,
    CaptureError,
    ConfigurationError,
    ErrorCode,
    ErrorSeverity,
    IntegrityError,
    OperationInProgressError,
    PlanConfigurationError,
    ResilienceError,
    StepExecutionError,
)


class TestResilienceErrors:
    """Tests for exception payloads and severities."""

    def test_all_errors_share_base(self):
        for error in (
            ConfigurationError("bad"),
            CaptureError("none"),
            IntegrityError("mismatch"),
            OperationInProgressError("backup"),
        ):
            assert isinstance(error, ResilienceError)

    def test_to_dict(self):
        data = ConfigurationError("Backup time must be HH:MM", field="time").to_dict()
        assert data == {
            "error": "ConfigurationError",
            "code": "CONFIGURATION_INVALID",
            "message": "Backup time must be HH:MM",
            "severity": "low",
            "details": [{"field": "time", "issue": "Backup time must be HH:MM"}],
        }

    @pytest.mark.parametrize(
        "error, severity",
        [
            (IntegrityError("x"), ErrorSeverity.CRITICAL),
            (CaptureError("x"), ErrorSeverity.HIGH),
            (OperationInProgressError("restore"), ErrorSeverity.LOW),
        ],
    )
    def test_severity(self, error, severity):
        assert error.severity == severity

    def test_capture_error_lists_domains(self):
        error = CaptureError("All data collectors failed", failed_domains={"users": "timeout"})
        assert error.failed_domains == {"users": "timeout"}
        assert error.details == [{"domain": "users", "error": "timeout"}]

    def test_step_execution_message(self):
        error = StepExecutionError("verify_backup", "boom", attempts=4)
        assert error.message == "Step 'verify_backup' failed after 4 attempt(s): boom"
        assert error.error_code == ErrorCode.STEP_FAILED

    def test_plan_configuration_details(self):
        error = PlanConfigurationError("cycle", plan_id="p", step_ids=["X", "Y"])
        assert error.details == [{"plan_id": "p", "unresolved_steps": ["X", "Y"]}]

    def test_health_alert(self):
        alert = BackupHealthAlert("Backup schedule missed", check="recency", details={"age": 90000})
        assert alert.check == "recency"
        assert alert.details == [{"check": "recency", "age": 90000}]
        assert alert.severity == ErrorSeverity.HIGH
