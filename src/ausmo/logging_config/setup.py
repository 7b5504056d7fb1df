"""Logging Setup.

Installs the resilience log handler. JSON lines for device and server
builds, a compact colored line for local development. Both formatters
attach the bound operation context and never print key material.
"""

import json
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from ausmo.errors import ResilienceError
from ausmo.logging_config.config import DEFAULT_LOGGING_CONFIG, LogFormat, LoggingConfig, LogLevel
from ausmo.logging_config.context import get_context_dict

TRACE_KEYS = ("operation_id", "correlation_id", "user_id")

# Attributes passed through ``extra=`` that are copied onto the entry.
RECORD_FIELDS = ("duration_ms", "backup_id", "restore_id", "plan_id", "step_id", "attempt", "domain")

REDACTED_KEYS = frozenset({"master_key", "key", "password", "salt", "iv", "ciphertext", "token"})
REDACTED = "[redacted]"

_HANDLER_MARKER = "_ausmo_handler"


def redact(values: Mapping[str, Any]) -> dict[str, Any]:
    """Copy ``values`` with secret-looking keys masked, recursing into mappings."""
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if str(key).lower() in REDACTED_KEYS:
            cleaned[key] = REDACTED
        elif isinstance(value, Mapping):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


def _describe_exception(record: logging.LogRecord) -> Optional[dict[str, Any]]:
    if not record.exc_info or record.exc_info[0] is None:
        return None
    error = record.exc_info[1]
    described: dict[str, Any] = {"type": record.exc_info[0].__name__, "message": str(error)}
    if isinstance(error, ResilienceError):
        described["code"] = error.error_code.value
        described["severity"] = error.severity.value
    return described


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Trace ids sit at the top level. Everything else bound through
    ``OperationContext`` or passed as a known ``extra=`` field is grouped
    under ``context``.
    """

    def __init__(
        self,
        service_name: str = "ausmo",
        include_caller: bool = True,
        environment: str = "",
        platform: str = "",
    ):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller
        self.environment = environment
        self.platform = platform

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if self.environment:
            entry["environment"] = self.environment
        if self.platform:
            entry["platform"] = self.platform
        if self.include_caller:
            entry["caller"] = {
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }

        context = get_context_dict()
        for key in TRACE_KEYS:
            if key in context:
                entry[key] = context.pop(key)
        for key in RECORD_FIELDS:
            if hasattr(record, key):
                context[key] = getattr(record, key)
        if context:
            entry["context"] = redact(context)

        exception = _describe_exception(record)
        if exception is not None:
            exception["traceback"] = self.formatException(record.exc_info)
            entry["exception"] = exception

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single colored line: time, level, logger, short operation id, message."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S.%f")[:-3]

        context = get_context_dict()
        operation_id = context.pop("operation_id", "")
        context.pop("correlation_id", None)
        tag = f" ({operation_id[:8]})" if operation_id else ""
        fields = " ".join(f"{k}={v}" for k, v in redact(context).items())

        line = (
            f"{timestamp} {color}{record.levelname:<8}{self.RESET} "
            f"{record.name}{tag}: {record.getMessage()}"
        )
        if fields:
            line += f"  [{fields}]"

        exception = _describe_exception(record)
        if exception is not None:
            if "code" in exception:
                line += f"  <{exception['code']}>"
            line += "\n" + self.formatException(record.exc_info)
        return line


def _apply_env_overrides(config: LoggingConfig) -> LoggingConfig:
    env_level = os.environ.get("AUSMO_LOG_LEVEL", "").upper()
    if env_level in LogLevel.__members__:
        config = replace(config, level=LogLevel(env_level))
    env_format = os.environ.get("AUSMO_LOG_FORMAT", "").lower()
    if env_format in {f.value for f in LogFormat}:
        config = replace(config, format=LogFormat(env_format))
    return config


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Handler:
    """Install the resilience handler on the root logger.

    AUSMO_LOG_LEVEL and AUSMO_LOG_FORMAT override ``config``. Calling
    again replaces the handler installed by the previous call; handlers
    added by the host application are left alone. Returns the handler.
    """
    config = _apply_env_overrides(config or DEFAULT_LOGGING_CONFIG)

    if config.format == LogFormat.JSON:
        formatter: logging.Formatter = StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
            environment=config.environment,
            platform=config.platform,
        )
    else:
        formatter = ConsoleFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    setattr(handler, _HANDLER_MARKER, True)

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, _HANDLER_MARKER, False):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.value))

    for noisy in ("sqlalchemy.engine", "urllib3", "sentry_sdk"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return handler
