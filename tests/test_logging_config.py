"""Tests for structured logging and operation tracing."""

import json
import logging
import sys
import time

import pytest

from ausmo.backup import BackupOrchestrator
from ausmo.errors import IntegrityError
from ausmo.logging_config.config import LogFormat, LoggingConfig, LogLevel
from ausmo.logging_config.context import (
    OperationContext,
    generate_operation_id,
    get_context_dict,
    get_correlation_id,
    get_operation_id,
    get_user_id,
)
from ausmo.logging_config.performance import PerformanceTimer, log_performance
from ausmo.logging_config.setup import (
    ConsoleFormatter,
    StructuredFormatter,
    configure_logging,
    redact,
)
from ausmo.settings import Settings


def _record(msg="test", level=logging.INFO, name="test", lineno=1, exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="test.py",
        lineno=lineno, msg=msg, args=(), exc_info=exc_info,
    )


class TestLoggingConfig:
    """Tests for logging configuration dataclasses."""

    def test_default_config_values(self):
        config = LoggingConfig()
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.JSON
        assert config.include_caller is True
        assert config.slow_threshold_ms == 30_000.0
        assert config.service_name == "ausmo"

    def test_custom_config(self):
        config = LoggingConfig(
            level=LogLevel.DEBUG,
            format=LogFormat.CONSOLE,
            slow_threshold_ms=500.0,
            service_name="test",
        )
        assert config.level == LogLevel.DEBUG
        assert config.format == LogFormat.CONSOLE
        assert config.slow_threshold_ms == 500.0

    def test_log_format_enum_values(self):
        assert LogFormat.JSON.value == "json"
        assert LogFormat.CONSOLE.value == "console"


class TestOperationContext:
    """Tests for operation context management."""

    def test_generate_operation_id_unique(self):
        ids = {generate_operation_id() for _ in range(100)}
        assert len(ids) == 100

    def test_context_sets_operation_id(self):
        with OperationContext(operation_id="op-123"):
            assert get_operation_id() == "op-123"
        assert get_operation_id() == ""

    def test_context_sets_user_id(self):
        with OperationContext(user_id="user_42"):
            assert get_user_id() == "user_42"
        assert get_user_id() == ""

    def test_correlation_id_defaults_to_operation_id(self):
        with OperationContext(operation_id="op-777") as ctx:
            assert ctx.correlation_id == "op-777"
            assert get_correlation_id() == "op-777"

    def test_auto_generates_operation_id(self):
        with OperationContext() as ctx:
            assert ctx.operation_id != ""
            assert get_operation_id() == ctx.operation_id

    def test_context_dict_empty_outside(self):
        assert get_context_dict() == {}

    def test_extra_and_bind(self):
        with OperationContext(operation_id="r1", extra={"operation": "backup"}) as ctx:
            ctx.bind(backup_id="backup_20260310T030000_ab12cd34")
            d = get_context_dict()
            assert d["operation"] == "backup"
            assert d["backup_id"] == "backup_20260310T030000_ab12cd34"
            assert ctx.extra["backup_id"] == "backup_20260310T030000_ab12cd34"
        assert get_context_dict() == {}

    def test_nested_contexts_restore_outer(self):
        with OperationContext(operation_id="outer"):
            with OperationContext(operation_id="inner"):
                assert get_operation_id() == "inner"
            assert get_operation_id() == "outer"

    def test_elapsed_ms(self):
        with OperationContext() as ctx:
            time.sleep(0.01)
            assert ctx.elapsed_ms >= 10


class TestStructuredFormatter:
    """Tests for JSON structured log formatting."""

    def test_formats_as_json(self):
        parsed = json.loads(StructuredFormatter().format(_record("hello world")))
        assert parsed["message"] == "hello world"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"
        assert parsed["service"] == "ausmo"
        assert "timestamp" in parsed
        assert "environment" not in parsed

    def test_environment_and_platform(self):
        formatter = StructuredFormatter(environment="staging", platform="android")
        parsed = json.loads(formatter.format(_record()))
        assert parsed["environment"] == "staging"
        assert parsed["platform"] == "android"

    def test_caller_info_toggle(self):
        with_caller = json.loads(StructuredFormatter(include_caller=True).format(_record(lineno=42)))
        assert with_caller["caller"]["line"] == 42
        without = json.loads(StructuredFormatter(include_caller=False).format(_record(lineno=42)))
        assert "caller" not in without

    def test_trace_ids_top_level_and_context_grouped(self):
        formatter = StructuredFormatter()
        with OperationContext(operation_id="ctx-test", extra={"operation": "backup"}) as ctx:
            ctx.bind(backup_id="b1")
            parsed = json.loads(formatter.format(_record()))
        assert parsed["operation_id"] == "ctx-test"
        assert parsed["correlation_id"] == "ctx-test"
        assert parsed["context"] == {"operation": "backup", "backup_id": "b1"}

    def test_known_extra_fields_join_context(self):
        record = _record()
        record.plan_id = "standard"
        record.step_id = "restore_settings"
        record.attempt = 2
        record.unrelated = "ignored"
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["context"] == {"plan_id": "standard", "step_id": "restore_settings", "attempt": 2}

    def test_secret_values_redacted(self):
        with OperationContext(extra={"master_key": "abc", "details": {"IV": "xyz", "domain": "users"}}):
            parsed = json.loads(StructuredFormatter().format(_record()))
        assert parsed["context"]["master_key"] == "[redacted]"
        assert parsed["context"]["details"] == {"IV": "[redacted]", "domain": "users"}

    def test_formats_exception(self):
        formatter = StructuredFormatter()
        try:
            raise ValueError("test error")
        except ValueError:
            parsed = json.loads(formatter.format(
                _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
            ))
        assert parsed["exception"]["type"] == "ValueError"
        assert "test error" in parsed["exception"]["message"]
        assert "code" not in parsed["exception"]

    def test_resilience_error_carries_code_and_severity(self):
        try:
            raise IntegrityError("Snapshot checksum mismatch")
        except IntegrityError:
            parsed = json.loads(StructuredFormatter().format(
                _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
            ))
        assert parsed["exception"]["code"] == "INTEGRITY_CHECK_FAILED"
        assert parsed["exception"]["severity"] == "critical"


class TestRedact:
    def test_leaves_input_untouched(self):
        values = {"token": "t", "backup_id": "b1"}
        assert redact(values) == {"token": "[redacted]", "backup_id": "b1"}
        assert values["token"] == "t"


class TestConsoleFormatter:
    """Tests for colored console log formatting."""

    def test_formats_readable_output(self):
        output = ConsoleFormatter().format(_record("hello", name="ausmo.backup"))
        assert "ausmo.backup" in output
        assert "hello" in output

    def test_short_operation_id_and_fields(self):
        with OperationContext(operation_id="abcdef1234567890", extra={"backup_id": "b1"}):
            output = ConsoleFormatter().format(_record())
        assert "(abcdef12)" in output
        assert "backup_id=b1" in output
        assert "correlation_id" not in output

    def test_has_color_codes(self):
        output = ConsoleFormatter().format(_record(level=logging.ERROR))
        assert "\033[31m" in output

    def test_shows_error_code(self):
        try:
            raise IntegrityError("mismatch")
        except IntegrityError:
            output = ConsoleFormatter().format(_record(level=logging.ERROR, exc_info=sys.exc_info()))
        assert "<INTEGRITY_CHECK_FAILED>" in output


class TestConfigureLogging:
    """Tests for the configure_logging setup function."""

    def setup_method(self):
        self.root = logging.getLogger()
        self.original_level = self.root.level

    def teardown_method(self):
        for handler in list(self.root.handlers):
            if getattr(handler, "_ausmo_handler", False):
                self.root.removeHandler(handler)
        self.root.setLevel(self.original_level)

    def _installed(self):
        return [h for h in self.root.handlers if getattr(h, "_ausmo_handler", False)]

    def test_json_format(self):
        handler = configure_logging(LoggingConfig(format=LogFormat.JSON, environment="staging"))
        assert self._installed() == [handler]
        assert isinstance(handler.formatter, StructuredFormatter)
        assert handler.formatter.environment == "staging"

    def test_console_format(self):
        handler = configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert isinstance(handler.formatter, ConsoleFormatter)

    def test_reconfigure_replaces_own_handler_only(self):
        foreign = logging.NullHandler()
        self.root.addHandler(foreign)
        try:
            configure_logging()
            second = configure_logging()
            assert self._installed() == [second]
            assert foreign in self.root.handlers
        finally:
            self.root.removeHandler(foreign)

    def test_sets_log_level(self):
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        assert self.root.level == logging.DEBUG

    def test_quiets_noisy_loggers(self):
        configure_logging()
        assert logging.getLogger("sqlalchemy.engine").level >= logging.WARNING

    def test_env_var_override_level(self, monkeypatch):
        monkeypatch.setenv("AUSMO_LOG_LEVEL", "DEBUG")
        configure_logging(LoggingConfig(level=LogLevel.ERROR))
        assert self.root.level == logging.DEBUG

    def test_env_var_override_format(self, monkeypatch):
        monkeypatch.setenv("AUSMO_LOG_FORMAT", "CONSOLE")
        handler = configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert isinstance(handler.formatter, ConsoleFormatter)

    def test_orchestrator_from_settings_installs_handler(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AUSMO_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("AUSMO_LOG_FORMAT", "json")
        monkeypatch.setenv("AUSMO_ENVIRONMENT", "staging")
        orchestrator = BackupOrchestrator.from_settings(Settings(_env_file=None))
        [handler] = self._installed()
        assert isinstance(handler.formatter, StructuredFormatter)
        assert handler.formatter.environment == "staging"
        assert handler.formatter.platform == "ios"
        orchestrator.cleanup()

    def test_from_settings_can_leave_logging_alone(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AUSMO_DATA_DIR", str(tmp_path))
        orchestrator = BackupOrchestrator.from_settings(Settings(_env_file=None), install_logging=False)
        assert self._installed() == []
        orchestrator.cleanup()


class TestPerformanceLogging:
    """Tests for performance timing decorator and context manager."""

    def test_log_performance_returns_value(self):
        @log_performance(threshold_ms=10000)
        def fast_func():
            return 42

        assert fast_func() == 42

    def test_log_performance_preserves_name(self):
        @log_performance()
        def my_function():
            """My docstring."""

        assert my_function.__name__ == "my_function"
        assert my_function.__doc__ == "My docstring."

    def test_log_performance_with_exception(self):
        @log_performance(threshold_ms=10000)
        def failing_func():
            raise ValueError("test error")

        with pytest.raises(ValueError, match="test error"):
            failing_func()

    def test_slow_call_logged_as_warning(self, caplog):
        @log_performance(threshold_ms=0.0)
        def slow():
            return None

        with caplog.at_level(logging.DEBUG):
            slow()
        assert any(r.levelno == logging.WARNING and "Slow operation" in r.getMessage()
                   for r in caplog.records)

    def test_performance_timer(self):
        with PerformanceTimer("backup", threshold_ms=10000) as timer:
            time.sleep(0.01)
        assert timer.duration_ms >= 10
        assert timer.duration_seconds == pytest.approx(timer.duration_ms / 1000)

    def test_performance_timer_with_exception(self):
        with pytest.raises(ValueError):
            with PerformanceTimer("restore") as timer:
                raise ValueError("oops")
        assert timer.duration_ms >= 0

    def test_default_threshold(self):
        assert PerformanceTimer("op").threshold_ms == 30_000.0
