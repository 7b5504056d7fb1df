"""Backup capture: collect configured data domains into one snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

from ausmo.errors import CaptureError
from ausmo.logging_config import log_performance

from .config import SCHEMA_VERSION, BackupConfiguration, DataDomain

logger = logging.getLogger(__name__)

Collector = Callable[[], Any]


@runtime_checkable
class DomainDataProvider(Protocol):
    """Application-side source of per-domain snapshot payloads."""

    def collect_user_data(self) -> Any: ...

    def collect_communication_data(self) -> Any: ...

    def collect_progress_data(self) -> Any: ...

    def collect_settings_data(self) -> Any: ...


@dataclass
class SnapshotDocument:
    """A point-in-time capture of every included data domain."""

    timestamp: str
    version: str = SCHEMA_VERSION
    data: dict[str, Any] = field(default_factory=dict)
    failed_domains: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "version": self.version,
            "data": self.data,
            "failed_domains": self.failed_domains,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SnapshotDocument":
        return cls(
            timestamp=payload["timestamp"],
            version=payload.get("version", SCHEMA_VERSION),
            data=dict(payload.get("data") or {}),
            failed_domains=dict(payload.get("failed_domains") or {}),
        )

    def domain(self, domain: DataDomain) -> Any:
        return self.data.get(domain.value)


class SnapshotCapture:
    """Pulls domain payloads from injected collectors.

    A single collector failure is logged and its domain is stored empty.
    Only when every included domain fails is the capture a ``CaptureError``.
    """

    def __init__(
        self,
        collectors: Mapping[DataDomain, Collector],
        schema_version: str = SCHEMA_VERSION,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._collectors = dict(collectors)
        self.schema_version = schema_version
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_provider(cls, provider: DomainDataProvider, **kwargs: Any) -> "SnapshotCapture":
        return cls(
            {
                DataDomain.USERS: provider.collect_user_data,
                DataDomain.COMMUNICATION: provider.collect_communication_data,
                DataDomain.PROGRESS: provider.collect_progress_data,
                DataDomain.SETTINGS: provider.collect_settings_data,
            },
            **kwargs,
        )

    @log_performance(threshold_ms=10_000)
    def collect(self, configuration: BackupConfiguration) -> SnapshotDocument:
        document = SnapshotDocument(
            timestamp=self._clock().isoformat(),
            version=self.schema_version,
        )
        domains = configuration.included_domains()
        for domain in domains:
            collector = self._collectors.get(domain)
            if collector is None:
                document.data[domain.value] = {}
                document.failed_domains[domain.value] = "no collector registered"
                logger.warning("No collector registered for domain %s", domain.value)
                continue
            try:
                document.data[domain.value] = collector()
            except Exception as exc:
                logger.warning(
                    "Collector for %s failed, storing empty payload: %s",
                    domain.value, exc,
                )
                document.data[domain.value] = {}
                document.failed_domains[domain.value] = str(exc) or type(exc).__name__

        if domains and len(document.failed_domains) == len(domains):
            raise CaptureError(
                "All data collectors failed", failed_domains=document.failed_domains
            )

        logger.info(
            "Captured %d of %d domains",
            len(domains) - len(document.failed_domains), len(domains),
        )
        return document
