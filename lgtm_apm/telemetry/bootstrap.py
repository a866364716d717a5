"""
Process-wide APM lifecycle.

Call init_apm() once at startup, before importing code that should be
instrumented. A second call replaces the running pipeline.
"""

import sys
import signal
import asyncio
import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from ..config import APMConfig
from .exporters import ExporterSet
from .pipeline import TelemetryPipeline

logger = logging.getLogger(__name__)

_pipeline: Optional[TelemetryPipeline] = None
_logger_instance = None
_sigterm_installed = False
_lock = threading.Lock()


@dataclass
class APMHandle:
    """What init_apm() hands back."""

    pipeline: TelemetryPipeline
    config: APMConfig
    shutdown: Callable[[], None]


def init_apm(
    config: Optional[APMConfig] = None,
    *,
    exporters: Optional[ExporterSet] = None,
    **overrides: Any,
) -> APMHandle:
    """
    Initialize APM: traces plus optional metrics and logs.

    Options not given explicitly are read from OTEL_* environment variables,
    then defaults. See APMConfig.from_env for the keyword options. Keywords
    given together with a config object replace its fields.
    """
    global _pipeline

    if config is None:
        config = APMConfig.from_env(**overrides)
    elif overrides:
        config = replace(config, **overrides)

    pipeline = TelemetryPipeline(config, exporters=exporters)

    with _lock:
        previous, _pipeline = _pipeline, None
    if previous is not None:
        try:
            previous.shutdown()
        except Exception as e:
            logger.debug(f"OTEL: Previous pipeline failed to shut down ({e})")

    if config.create_default_logger:
        from ..logger import create_logger
        set_logger(create_logger(config.service_name, config.environment))

    pipeline.start()
    with _lock:
        _pipeline = pipeline

    if config.handle_sigterm:
        install_sigterm_handler()

    return APMHandle(pipeline=pipeline, config=config, shutdown=shutdown)


def shutdown() -> None:
    """Graceful shutdown of the running pipeline. Safe to call repeatedly."""
    global _pipeline

    with _lock:
        pipeline, _pipeline = _pipeline, None
    if pipeline is not None:
        pipeline.shutdown()


async def ashutdown() -> None:
    """Awaitable shutdown; blocks a worker thread, not the event loop."""
    await asyncio.to_thread(shutdown)


def get_pipeline() -> Optional[TelemetryPipeline]:
    return _pipeline


def set_logger(logger_instance) -> None:
    """Set the process logger returned by get_logger()."""
    global _logger_instance
    _logger_instance = logger_instance


def get_logger():
    """Get the trace-aware logger set via set_logger() or create_default_logger."""
    return _logger_instance


def _handle_sigterm(signum, frame) -> None:
    try:
        shutdown()
    finally:
        sys.exit(0)


def install_sigterm_handler() -> bool:
    """Shut down and exit on SIGTERM. Installed once, from the main thread only."""
    global _sigterm_installed

    if _sigterm_installed:
        return True
    if threading.current_thread() is not threading.main_thread():
        logger.debug("OTEL: Not in main thread, SIGTERM handler not installed")
        return False

    signal.signal(signal.SIGTERM, _handle_sigterm)
    _sigterm_installed = True
    return True
