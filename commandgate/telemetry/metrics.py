"""OpenTelemetry metrics instrumentation helpers."""

from __future__ import annotations

import logging

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource

from commandgate.core.config import settings

_logger = logging.getLogger(__name__)

_metrics_enabled = False
_meter = None
_provider: MeterProvider | None = None
_decision_counter = None
_permission_counter = None
_allowlist_counter = None


def configure_metrics() -> None:
    """Initialise the metrics provider if enabled via settings."""

    global _metrics_enabled, _meter, _provider, _decision_counter, _permission_counter, _allowlist_counter

    if not settings.otel_enabled:
        return
    if _metrics_enabled:
        return

    exporter_name = settings.otel_exporter.lower().strip()
    metric_readers = []

    if exporter_name == "console":
        metric_readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))
    elif exporter_name == "prometheus":
        try:
            from opentelemetry.exporter.prometheus import PrometheusMetricReader  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError(
                "Prometheus exporter selected but opentelemetry-exporter-prometheus is not installed."
            ) from exc
        metric_readers.append(PrometheusMetricReader())
    elif exporter_name == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("OTLP exporter selected but opentelemetry-exporter-otlp is not installed.") from exc
        endpoint = settings.otel_otlp_endpoint
        exporter = OTLPMetricExporter(endpoint=endpoint) if endpoint else OTLPMetricExporter()
        metric_readers.append(PeriodicExportingMetricReader(exporter))
    else:
        _logger.warning("Unsupported OTEL exporter '%s'; defaulting to console", exporter_name)
        metric_readers.append(PeriodicExportingMetricReader(ConsoleMetricExporter()))

    _provider = MeterProvider(metric_readers=metric_readers, resource=Resource.create({"service.name": "commandgate"}))
    metrics.set_meter_provider(_provider)
    _meter = metrics.get_meter("commandgate")
    _decision_counter = _meter.create_counter(
        name="commandgate.decisions",
        unit="1",
        description="Command decisions by outcome and context",
    )
    _permission_counter = _meter.create_counter(
        name="commandgate.permission_checks",
        unit="1",
        description="Actor permission checks by status",
    )
    _allowlist_counter = _meter.create_counter(
        name="commandgate.allowlist_lookups",
        unit="1",
        description="Allowlisted operator lookups by result",
    )
    _metrics_enabled = True


def record_decision(allowed: bool, context: str | None) -> None:
    if _metrics_enabled and _decision_counter is not None:
        _decision_counter.add(1, {"allowed": allowed, "context": context or "unknown"})


def record_permission_check(status: str) -> None:
    if _metrics_enabled and _permission_counter is not None:
        _permission_counter.add(1, {"status": status})


def record_allowlist_lookup(allowlisted: bool) -> None:
    if _metrics_enabled and _allowlist_counter is not None:
        _allowlist_counter.add(1, {"result": "hit" if allowlisted else "miss"})


def collect_prometheus_metrics() -> tuple[bytes, str]:
    """Render the default Prometheus registry the exporter writes into."""

    try:
        from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("Prometheus exporter selected but prometheus-client is not installed.") from exc
    return generate_latest(), CONTENT_TYPE_LATEST


def shutdown_metrics() -> None:
    global _metrics_enabled, _provider
    if _metrics_enabled and _provider is not None:
        try:
            _provider.shutdown()
        except Exception:  # pragma: no cover
            _logger.exception("Failed to shutdown metrics provider")
        finally:
            _metrics_enabled = False
            _provider = None
