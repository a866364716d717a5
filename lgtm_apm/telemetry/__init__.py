"""
LGTM APM Telemetry Module

OpenTelemetry SDK setup: traces, optional metrics, optional logs,
exported over OTLP/HTTP.
"""

from .context import get_trace_context, TraceContextReader
from .exporters import ExporterSet
from .pipeline import TelemetryPipeline, build_resource, discover_instrumentors
from .bootstrap import (
    APMHandle,
    init_apm,
    shutdown,
    ashutdown,
    get_pipeline,
    set_logger,
    get_logger,
    install_sigterm_handler,
)

__all__ = [
    "get_trace_context",
    "TraceContextReader",
    "ExporterSet",
    "TelemetryPipeline",
    "build_resource",
    "discover_instrumentors",
    "APMHandle",
    "init_apm",
    "shutdown",
    "ashutdown",
    "get_pipeline",
    "set_logger",
    "get_logger",
    "install_sigterm_handler",
]
