"""
Process-wide delegating providers.

OpenTelemetry lets the global tracer, meter and logger providers be set once
per process. These providers are registered once and forward to whichever
pipeline is active, so tracers, meters and instruments handed out earlier
keep working after init_apm() replaces the pipeline.
"""

import logging
import threading
import weakref
from typing import Any, Optional

from opentelemetry import trace, metrics
from opentelemetry import _logs

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Traces
# ----------------------------------------------------------------------

class _DelegatingTracer(trace.Tracer):
    """Resolves the real tracer from the active provider on every span."""

    def __init__(self, owner: "DelegatingTracerProvider", args: tuple, kwargs: dict):
        self._owner = owner
        self._args = args
        self._kwargs = kwargs
        self._cache = (None, None)

    def _tracer(self) -> trace.Tracer:
        provider = self._owner.delegate
        cached_provider, tracer = self._cache
        if cached_provider is not provider:
            tracer = provider.get_tracer(*self._args, **self._kwargs)
            self._cache = (provider, tracer)
        return tracer

    def start_span(self, *args, **kwargs) -> trace.Span:
        return self._tracer().start_span(*args, **kwargs)

    def start_as_current_span(self, *args, **kwargs):
        return self._tracer().start_as_current_span(*args, **kwargs)


class DelegatingTracerProvider(trace.TracerProvider):
    def __init__(self):
        self.delegate: trace.TracerProvider = trace.NoOpTracerProvider()

    def get_tracer(self, *args, **kwargs) -> trace.Tracer:
        return _DelegatingTracer(self, args, kwargs)

    def set_delegate(self, provider: Optional[trace.TracerProvider]) -> None:
        self.delegate = provider or trace.NoOpTracerProvider()


# ----------------------------------------------------------------------
# Metrics
# ----------------------------------------------------------------------

class _DelegatingInstrument:
    """Instrument recreated on the active meter whenever the pipeline changes."""

    def __init__(self, factory: str, args: tuple, kwargs: dict):
        self._factory = factory
        self._args = args
        self._kwargs = kwargs
        self._real: Any = None

    def bind(self, meter) -> None:
        self._real = getattr(meter, self._factory)(*self._args, **self._kwargs)

    def add(self, *args, **kwargs) -> None:
        self._real.add(*args, **kwargs)

    def record(self, *args, **kwargs) -> None:
        self._real.record(*args, **kwargs)

    def set(self, *args, **kwargs) -> None:
        self._real.set(*args, **kwargs)

    @property
    def name(self) -> str:
        return self._real.name


class _DelegatingMeter(metrics.Meter):
    def __init__(self, provider: metrics.MeterProvider, args: tuple, kwargs: dict):
        name = args[0] if args else kwargs.get("name", "")
        super().__init__(name)
        self._args = args
        self._kwargs = kwargs
        self._instruments = []
        self._lock = threading.Lock()
        self._meter = None
        self.bind(provider)

    def bind(self, provider: metrics.MeterProvider) -> None:
        with self._lock:
            meter = provider.get_meter(*self._args, **self._kwargs)
            for instrument in self._instruments:
                instrument.bind(meter)
            self._meter = meter

    def _create(self, factory: str, *args, **kwargs) -> _DelegatingInstrument:
        instrument = _DelegatingInstrument(factory, args, kwargs)
        with self._lock:
            instrument.bind(self._meter)
            self._instruments.append(instrument)
        return instrument

    def create_counter(self, *args, **kwargs):
        return self._create("create_counter", *args, **kwargs)

    def create_up_down_counter(self, *args, **kwargs):
        return self._create("create_up_down_counter", *args, **kwargs)

    def create_histogram(self, *args, **kwargs):
        return self._create("create_histogram", *args, **kwargs)

    def create_gauge(self, *args, **kwargs):
        return self._create("create_gauge", *args, **kwargs)

    def create_observable_counter(self, *args, **kwargs):
        return self._create("create_observable_counter", *args, **kwargs)

    def create_observable_up_down_counter(self, *args, **kwargs):
        return self._create("create_observable_up_down_counter", *args, **kwargs)

    def create_observable_gauge(self, *args, **kwargs):
        return self._create("create_observable_gauge", *args, **kwargs)


class DelegatingMeterProvider(metrics.MeterProvider):
    def __init__(self):
        self.delegate: metrics.MeterProvider = metrics.NoOpMeterProvider()
        self._meters = weakref.WeakSet()
        self._lock = threading.Lock()

    def get_meter(self, *args, **kwargs) -> metrics.Meter:
        with self._lock:
            meter = _DelegatingMeter(self.delegate, args, kwargs)
            self._meters.add(meter)
        return meter

    def set_delegate(self, provider: Optional[metrics.MeterProvider]) -> None:
        with self._lock:
            self.delegate = provider or metrics.NoOpMeterProvider()
            for meter in list(self._meters):
                meter.bind(self.delegate)


# ----------------------------------------------------------------------
# Logs
# ----------------------------------------------------------------------

class _DelegatingLogger:
    """Forwards to the logger of the active provider."""

    def __init__(self, owner: "DelegatingLoggerProvider", args: tuple, kwargs: dict):
        self._owner = owner
        self._args = args
        self._kwargs = kwargs
        self._cache = (None, None)

    def _logger(self):
        provider = self._owner.delegate
        cached_provider, real = self._cache
        if cached_provider is not provider:
            real = provider.get_logger(*self._args, **self._kwargs)
            self._cache = (provider, real)
        return real

    def __getattr__(self, name):
        return getattr(self._logger(), name)


class DelegatingLoggerProvider(_logs.LoggerProvider):
    def __init__(self):
        self.delegate: _logs.LoggerProvider = _logs.NoOpLoggerProvider()

    def get_logger(self, *args, **kwargs):
        return _DelegatingLogger(self, args, kwargs)

    def set_delegate(self, provider: Optional[_logs.LoggerProvider]) -> None:
        self.delegate = provider or _logs.NoOpLoggerProvider()


# ----------------------------------------------------------------------
# Registration
# ----------------------------------------------------------------------

tracer_provider = DelegatingTracerProvider()
meter_provider = DelegatingMeterProvider()
logger_provider = DelegatingLoggerProvider()

_lock = threading.Lock()
_installed = False
_active: Any = None


def _install() -> None:
    global _installed

    trace.set_tracer_provider(tracer_provider)
    metrics.set_meter_provider(meter_provider)
    _logs.set_logger_provider(logger_provider)
    _installed = True

    if trace.get_tracer_provider() is not tracer_provider:
        logger.warning("OTEL: A global TracerProvider was already set; global tracers will not follow APM")


def activate(owner: Any, tracer=None, meter=None, log=None) -> None:
    """Point the global providers at one pipeline's SDK providers."""
    global _active

    with _lock:
        if not _installed:
            _install()
        tracer_provider.set_delegate(tracer)
        meter_provider.set_delegate(meter)
        logger_provider.set_delegate(log)
        _active = owner


def deactivate(owner: Any) -> None:
    """Return the global providers to no-op, if `owner` is still active."""
    global _active

    with _lock:
        if _active is not owner:
            return
        tracer_provider.set_delegate(None)
        meter_provider.set_delegate(None)
        logger_provider.set_delegate(None)
        _active = None
