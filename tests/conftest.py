"""Shared fixtures for LGTM APM tests."""

from typing import Dict, List, Tuple

import pytest
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from opentelemetry.sdk.metrics.export import MetricExporter, MetricExportResult
from opentelemetry.sdk._logs.export import LogExporter, LogExportResult

from lgtm_apm.telemetry import ExporterSet, bootstrap


ENV_VARS = [
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "OTEL_EXPORTER_OTLP_HEADERS",
    "OTEL_SERVICE_NAME",
    "OTEL_SERVICE_VERSION",
    "OTEL_DEPLOYMENT_ENVIRONMENT",
    "ENVIRONMENT",
    "OTEL_ORG_ID",
    "OTEL_METRICS_ENABLED",
    "OTEL_PYTHON_DISABLED_INSTRUMENTATIONS",
    "OTEL_RESOURCE_ATTRIBUTES",
]


class RecordingSpanExporter(SpanExporter):
    def __init__(self):
        self.spans = []
        self.export_calls = 0
        self.shutdown_calls = 0

    def export(self, spans):
        self.export_calls += 1
        self.spans.extend(spans)
        return SpanExportResult.SUCCESS

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        return True

    def shutdown(self):
        self.shutdown_calls += 1


class RecordingMetricExporter(MetricExporter):
    def __init__(self):
        super().__init__(preferred_temporality={})
        self.batches = []
        self.shutdown_calls = 0

    def export(self, metrics_data, timeout_millis: float = 10_000, **kwargs):
        self.batches.append(metrics_data)
        return MetricExportResult.SUCCESS

    def force_flush(self, timeout_millis: float = 10_000) -> bool:
        return True

    def shutdown(self, timeout_millis: float = 30_000, **kwargs):
        self.shutdown_calls += 1


class RecordingLogExporter(LogExporter):
    def __init__(self):
        self.records = []
        self.shutdown_calls = 0

    def export(self, batch):
        self.records.extend(batch)
        return LogExportResult.SUCCESS

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        return True

    def shutdown(self):
        self.shutdown_calls += 1


class Recorder:
    """Exporter factories that remember what they were built with."""

    def __init__(self):
        self.calls: List[Tuple[str, str, Dict[str, str]]] = []
        self.span_exporter = RecordingSpanExporter()
        self.metric_exporter = RecordingMetricExporter()
        self.log_exporter = RecordingLogExporter()

    def span(self, endpoint, headers):
        self.calls.append(("span", endpoint, headers))
        return self.span_exporter

    def metric(self, endpoint, headers):
        self.calls.append(("metric", endpoint, headers))
        return self.metric_exporter

    def log(self, endpoint, headers):
        self.calls.append(("log", endpoint, headers))
        return self.log_exporter

    def exporter_set(self, metrics=True, logs=True) -> ExporterSet:
        return ExporterSet(
            span=self.span,
            metric=self.metric if metrics else None,
            log=self.log if logs else None,
        )

    def endpoint(self, kind):
        return next(endpoint for k, endpoint, _ in self.calls if k == kind)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Run every test without ambient OTEL configuration."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_bootstrap():
    """Leave no running pipeline or process logger behind."""
    yield
    bootstrap.shutdown()
    bootstrap.set_logger(None)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def next_recorder():
    """A second, independent recorder for re-initialization tests."""
    return Recorder()
