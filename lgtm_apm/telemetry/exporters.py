"""
Exporter capabilities.

An ExporterSet carries one factory per signal. A missing factory means the
signal is unavailable in this process; the pipeline checks the flag instead
of probing for packages while it starts.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

ExporterFactory = Callable[[str, Dict[str, str]], Any]


@dataclass
class ExporterSet:
    """Factories `(endpoint, headers) -> exporter` for each signal."""

    span: ExporterFactory
    metric: Optional[ExporterFactory] = None
    log: Optional[ExporterFactory] = None

    @property
    def metrics_available(self) -> bool:
        return self.metric is not None

    @property
    def logs_available(self) -> bool:
        return self.log is not None

    @classmethod
    def otlp_http(cls) -> "ExporterSet":
        """Resolve the OTLP/HTTP exporters once, at startup."""
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        def span(endpoint: str, headers: Dict[str, str]):
            return OTLPSpanExporter(endpoint=endpoint, headers=headers or None)

        metric = None
        try:
            from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter

            def metric(endpoint: str, headers: Dict[str, str]):
                return OTLPMetricExporter(endpoint=endpoint, headers=headers or None)
        except ImportError as e:
            logger.warning(f"OTEL: OTLP metric exporter not available ({e})")

        log = None
        try:
            from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter

            def log(endpoint: str, headers: Dict[str, str]):
                return OTLPLogExporter(endpoint=endpoint, headers=headers or None)
        except ImportError as e:
            logger.warning(f"OTEL: OTLP log exporter not available ({e})")

        return cls(span=span, metric=metric, log=log)
