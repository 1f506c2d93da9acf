"""Telemetry utilities for exporting decision events and metrics."""

from .event_sink import EventSink, FileEventSink, NullEventSink, WebhookEventSink, sink_from_settings
from .metrics import (
    configure_metrics,
    record_decision,
    record_permission_check,
    record_allowlist_lookup,
    shutdown_metrics,
    collect_prometheus_metrics,
)

__all__ = [
    "EventSink",
    "FileEventSink",
    "NullEventSink",
    "WebhookEventSink",
    "sink_from_settings",
    "configure_metrics",
    "record_decision",
    "record_permission_check",
    "record_allowlist_lookup",
    "shutdown_metrics",
    "collect_prometheus_metrics",
]
