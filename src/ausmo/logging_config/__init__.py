"""Structured Logging & Operation Tracing.

Provides structured JSON logging, operation ID propagation,
and performance timing for backup and recovery operations.
"""

from ausmo.logging_config.config import LogFormat, LoggingConfig, LogLevel
from ausmo.logging_config.context import OperationContext, generate_operation_id
from ausmo.logging_config.performance import PerformanceTimer, log_performance
from ausmo.logging_config.setup import ConsoleFormatter, StructuredFormatter, configure_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "OperationContext",
    "PerformanceTimer",
    "ConsoleFormatter",
    "StructuredFormatter",
    "configure_logging",
    "generate_operation_id",
    "log_performance",
]
