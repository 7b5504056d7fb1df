"""Observability sinks for alerts, exceptions and breadcrumbs.

The orchestrator only depends on the two-method ``ObservabilitySink``
capability. ``NullSink`` is the default, ``RecordingSink`` keeps events in
memory, and ``SentrySink`` forwards to the Sentry SDK.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

import sentry_sdk

logger = logging.getLogger(__name__)


@runtime_checkable
class ObservabilitySink(Protocol):
    """Capability used to surface errors and trace events."""

    def report_error(self, error: BaseException, context: Optional[dict[str, Any]] = None) -> None:
        ...

    def add_breadcrumb(
        self,
        message: str,
        category: str = "backup",
        level: str = "info",
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        ...


class NullSink:
    """Discards every event."""

    def report_error(self, error: BaseException, context: Optional[dict[str, Any]] = None) -> None:
        return None

    def add_breadcrumb(
        self,
        message: str,
        category: str = "backup",
        level: str = "info",
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        return None


@dataclass
class ObservedEvent:
    """An error or breadcrumb captured by ``RecordingSink``."""

    kind: str  # "error" or "breadcrumb"
    message: str
    category: str = ""
    level: str = "info"
    data: dict[str, Any] = field(default_factory=dict)
    error_type: Optional[str] = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class RecordingSink:
    """Keeps errors and breadcrumbs in memory and mirrors them to the log."""

    def __init__(self, max_events: int = 500) -> None:
        self.max_events = max_events
        self._events: list[ObservedEvent] = []
        self._lock = threading.Lock()

    def report_error(self, error: BaseException, context: Optional[dict[str, Any]] = None) -> None:
        logger.error("Reported error %s: %s", type(error).__name__, error)
        self._append(ObservedEvent(
            kind="error",
            message=str(error),
            level="error",
            data=dict(context or {}),
            error_type=type(error).__name__,
        ))

    def add_breadcrumb(
        self,
        message: str,
        category: str = "backup",
        level: str = "info",
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        logger.debug("Breadcrumb [%s] %s", category, message)
        self._append(ObservedEvent(
            kind="breadcrumb",
            message=message,
            category=category,
            level=level,
            data=dict(data or {}),
        ))

    @property
    def errors(self) -> list[ObservedEvent]:
        with self._lock:
            return [e for e in self._events if e.kind == "error"]

    @property
    def breadcrumbs(self) -> list[ObservedEvent]:
        with self._lock:
            return [e for e in self._events if e.kind == "breadcrumb"]

    def clear(self) -> int:
        """Clear all events, return count cleared."""
        with self._lock:
            count = len(self._events)
            self._events.clear()
            return count

    def _append(self, event: ObservedEvent) -> None:
        with self._lock:
            self._events.append(event)
            if len(self._events) > self.max_events:
                del self._events[: len(self._events) - self.max_events]


class SentrySink:
    """Forwards errors and breadcrumbs to Sentry.

    ``sentry_sdk.init`` is expected to have been called by the host
    application; without a configured client the SDK calls are no-ops.
    """

    def report_error(self, error: BaseException, context: Optional[dict[str, Any]] = None) -> None:
        sentry_sdk.capture_exception(error, extras=dict(context or {}))

    def add_breadcrumb(
        self,
        message: str,
        category: str = "backup",
        level: str = "info",
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        sentry_sdk.add_breadcrumb(
            message=message,
            category=category,
            level=level,
            data=dict(data or {}),
        )
