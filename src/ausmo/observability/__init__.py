"""Observability capability: error reporting and breadcrumbs."""

from .sink import NullSink, ObservabilitySink, ObservedEvent, RecordingSink, SentrySink

__all__ = [
    "NullSink",
    "ObservabilitySink",
    "ObservedEvent",
    "RecordingSink",
    "SentrySink",
]
