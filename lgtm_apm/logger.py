"""
Trace-aware structured logger.

Adds trace_id/span_id of the active span to every record. Records are
written as single-line JSON to stdout (stderr for errors) unless a custom
sink is supplied.

Usage:
    logger = create_logger("checkout", environment="prod")
    logger.info("order placed", {"order_id": 42})
    logger.error("payment failed", exc)
"""

import sys
import json
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from .config import default_environment
from .telemetry.context import TraceContextReader, get_trace_context

Sink = Callable[[str, str, Dict[str, Any]], None]

DEFAULT_SERVICE_NAME = "service"


@dataclass(frozen=True)
class LoggerConfig:
    """Configuration for a trace-aware logger. Immutable once created."""

    service_name: str = DEFAULT_SERVICE_NAME
    environment: str = field(default_factory=default_environment)
    sink: Optional[Sink] = None

    def __post_init__(self):
        if not self.service_name:
            object.__setattr__(self, "service_name", DEFAULT_SERVICE_NAME)


def _as_fields(data: Any) -> Dict[str, Any]:
    if isinstance(data, Mapping):
        return dict(data)
    return {}


def error_fields(err: Any) -> Dict[str, Any]:
    """Turn an exception into {err, stack}; other values are plain fields."""
    if isinstance(err, BaseException):
        stack = "".join(traceback.format_exception(type(err), err, err.__traceback__))
        return {"err": str(err), "stack": stack}
    return _as_fields(err)


class TraceAwareLogger:
    """Structured, leveled logger correlated with the active trace."""

    def __init__(
        self,
        config: LoggerConfig,
        trace_context: Optional[TraceContextReader] = None,
    ):
        self.config = config
        self._trace_context = trace_context or get_trace_context

    @property
    def service_name(self) -> str:
        return self.config.service_name

    @property
    def environment(self) -> str:
        return self.config.environment

    def emit(self, level: str, message: str, meta: Optional[Mapping[str, Any]] = None) -> None:
        fields = {"service": self.config.service_name, "env": self.config.environment}
        fields.update(self._trace_context())
        fields.update(_as_fields(meta))

        if self.config.sink is not None:
            self.config.sink(level, message, fields)
            return

        line = json.dumps({"level": level, "message": message, **fields})
        stream = sys.stderr if level == "error" else sys.stdout
        stream.write(line + "\n")
        stream.flush()

    def log(self, message: str, data: Optional[Mapping[str, Any]] = None) -> None:
        self.emit("info", message, data)

    def debug(self, message: str, data: Optional[Mapping[str, Any]] = None) -> None:
        self.emit("debug", message, data)

    def info(self, message: str, data: Optional[Mapping[str, Any]] = None) -> None:
        self.emit("info", message, data)

    def warn(self, message: str, data: Optional[Mapping[str, Any]] = None) -> None:
        self.emit("warn", message, data)

    def error(self, message: str, err: Any = None) -> None:
        self.emit("error", message, error_fields(err))


def create_logger(
    service_name: str = "",
    environment: Optional[str] = None,
    sink: Optional[Sink] = None,
    trace_context: Optional[TraceContextReader] = None,
) -> TraceAwareLogger:
    """Create a trace-aware logger. An empty service name falls back to "service"."""
    config = LoggerConfig(
        service_name=service_name or DEFAULT_SERVICE_NAME,
        environment=environment or default_environment(),
        sink=sink,
    )
    return TraceAwareLogger(config, trace_context=trace_context)
