"""
OpenTelemetry SDK pipeline.

Builds the tracer, meter and logger providers for one APM configuration.
Batching, export and retry belong to the SDK; this module only wires it.
"""

import logging
import threading
from importlib.metadata import entry_points
from typing import Any, Dict, Iterable, List, Optional

from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor

from ..config import APMConfig
from .exporters import ExporterSet
from . import providers

logger = logging.getLogger(__name__)

INSTRUMENTOR_ENTRY_POINT_GROUP = "opentelemetry_instrumentor"


def build_resource(config: APMConfig) -> Resource:
    """Resource describing who is sending telemetry."""
    return Resource.create({
        SERVICE_NAME: config.service_name,
        SERVICE_VERSION: config.service_version,
        "deployment.environment": config.environment,
        **(config.attributes or {}),
    })


def discover_instrumentors(disabled: Iterable[str] = ()) -> List[Any]:
    """Load every installed instrumentor entry point not listed in `disabled`."""
    disabled = set(disabled)
    found = []
    for ep in entry_points(group=INSTRUMENTOR_ENTRY_POINT_GROUP):
        if ep.name in disabled:
            logger.debug(f"OTEL: Instrumentation {ep.name} disabled")
            continue
        try:
            found.append(ep.load()())
        except Exception as e:
            logger.warning(f"OTEL: Failed to load instrumentation {ep.name} ({e})")
    return found


class TelemetryPipeline:
    """
    Providers and processors for one APM configuration.

    Construction builds everything; start() points the process-wide providers
    at this pipeline and instruments libraries; shutdown() flushes and stops, once.
    """

    def __init__(
        self,
        config: APMConfig,
        exporters: Optional[ExporterSet] = None,
        set_global: bool = True,
    ):
        self.config = config
        self.exporters = exporters or ExporterSet.otlp_http()
        self.set_global = set_global
        self.resource = build_resource(config)

        self.tracer_provider = self._build_tracer_provider()
        self.meter_provider = self._build_meter_provider()
        self.logger_provider = self._build_logger_provider()

        self._log_handler: Optional[LoggingHandler] = None
        self._instrumented: List[Any] = []
        self._lock = threading.Lock()
        self._started = False
        self._shut_down = False

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @property
    def headers(self) -> Dict[str, str]:
        return self.config.headers

    def _build_tracer_provider(self) -> TracerProvider:
        provider = TracerProvider(resource=self.resource)
        exporter = self.exporters.span(self.config.traces_endpoint, self.headers)
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info(f"OTEL: Trace exporter configured → {self.config.traces_endpoint}")
        return provider

    def _build_meter_provider(self) -> Optional[MeterProvider]:
        if not self.config.enable_metrics:
            return None
        if not self.exporters.metrics_available:
            logger.warning("OTEL: Metrics disabled (no metric exporter available)")
            return None

        try:
            exporter = self.exporters.metric(self.config.metrics_endpoint, self.headers)
            reader = PeriodicExportingMetricReader(
                exporter,
                export_interval_millis=self.config.metric_export_interval_millis,
            )
            provider = MeterProvider(resource=self.resource, metric_readers=[reader])
        except Exception as e:
            logger.warning(f"OTEL: Metrics disabled ({e})")
            return None

        logger.info(f"OTEL: Metric exporter configured → {self.config.metrics_endpoint}")
        return provider

    def _build_logger_provider(self) -> Optional[LoggerProvider]:
        if not self.config.enable_logs:
            return None
        if not self.exporters.logs_available:
            logger.warning("OTEL: Logs disabled (no log exporter available)")
            return None

        try:
            exporter = self.exporters.log(self.config.logs_endpoint, self.headers)
            provider = LoggerProvider(resource=self.resource)
            provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
        except Exception as e:
            logger.warning(f"OTEL: Logs disabled ({e})")
            return None

        logger.info(f"OTEL: Log exporter configured → {self.config.logs_endpoint}")
        return provider

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def metrics_enabled(self) -> bool:
        return self.meter_provider is not None

    @property
    def logs_enabled(self) -> bool:
        return self.logger_provider is not None

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    def start(self) -> "TelemetryPipeline":
        with self._lock:
            if self._started:
                return self
            self._started = True

        if self.set_global:
            providers.activate(
                self,
                tracer=self.tracer_provider,
                meter=self.meter_provider,
                log=self.logger_provider,
            )

        if self.logger_provider is not None:
            self._log_handler = LoggingHandler(
                level=logging.NOTSET, logger_provider=self.logger_provider
            )
            logging.getLogger().addHandler(self._log_handler)

        self._instrument()
        logger.info(f"OTEL: Telemetry initialized for {self.config.service_name}")
        return self

    def _instrument(self) -> None:
        instrumentors = list(self.config.instrumentors)
        if self.config.auto_instrument:
            instrumentors.extend(discover_instrumentors(self.config.disabled_instrumentations))

        kwargs: Dict[str, Any] = {"tracer_provider": self.tracer_provider}
        if self.meter_provider is not None:
            kwargs["meter_provider"] = self.meter_provider

        for instrumentor in instrumentors:
            try:
                instrumentor.instrument(**kwargs)
            except Exception as e:
                logger.warning(f"OTEL: Failed to instrument {type(instrumentor).__name__} ({e})")
                continue
            self._instrumented.append(instrumentor)

    def shutdown(self) -> bool:
        """
        Flush and stop every provider.

        Returns False when the pipeline was already shut down.
        """
        with self._lock:
            if self._shut_down:
                return False
            self._shut_down = True

        for instrumentor in reversed(self._instrumented):
            try:
                instrumentor.uninstrument()
            except Exception as e:
                logger.debug(f"OTEL: Failed to uninstrument {type(instrumentor).__name__} ({e})")
        self._instrumented.clear()

        if self.set_global:
            providers.deactivate(self)

        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
            self._log_handler = None

        if self.logger_provider is not None:
            self.logger_provider.shutdown()
        if self.meter_provider is not None:
            self.meter_provider.shutdown()
        self.tracer_provider.shutdown()

        logger.info(f"OTEL: Telemetry shut down for {self.config.service_name}")
        return True

    def get_tracer(self, name: str, version: Optional[str] = None):
        return self.tracer_provider.get_tracer(name, version)
