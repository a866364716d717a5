"""
LGTM APM - One-call OpenTelemetry APM for the LGTM stack

Call init_apm(collector_url=..., service_name=...) and traces, metrics and
(optionally) logs are exported to Grafana Alloy / Tempo / Mimir / Loki.
"""

__version__ = "0.1.0"

from .config import APMConfig, load_config
from .telemetry import init_apm, shutdown, ashutdown, get_logger, set_logger
from .logger import LoggerConfig, TraceAwareLogger, create_logger

__all__ = [
    "__version__",
    "APMConfig",
    "load_config",
    "init_apm",
    "shutdown",
    "ashutdown",
    "get_logger",
    "set_logger",
    "LoggerConfig",
    "TraceAwareLogger",
    "create_logger",
]
