"""Tests for the process-wide APM lifecycle."""

import asyncio
import signal

import pytest
from opentelemetry import trace, metrics

from lgtm_apm import init_apm, shutdown, ashutdown, get_logger, set_logger, create_logger
from lgtm_apm.config import APMConfig
from lgtm_apm.telemetry import bootstrap


def start(recorder, **overrides):
    options = {"auto_instrument": False, "handle_sigterm": False}
    options.update(overrides)
    return init_apm(exporters=recorder.exporter_set(), **options)


def test_init_apm_returns_handle(recorder):
    handle = start(recorder, service_name="orders", collector_url="http://alloy:4318/")

    assert handle.config.service_name == "orders"
    assert bootstrap.get_pipeline() is handle.pipeline
    assert recorder.endpoint("span") == "http://alloy:4318/v1/traces"
    assert handle.shutdown is shutdown


def test_init_apm_reads_environment(recorder, monkeypatch):
    monkeypatch.setenv("OTEL_SERVICE_NAME", "env-service")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4318")
    monkeypatch.setenv("OTEL_METRICS_ENABLED", "false")

    handle = start(recorder)

    assert handle.config.service_name == "env-service"
    assert handle.pipeline.metrics_enabled is False
    assert recorder.endpoint("span") == "http://collector:4318/v1/traces"


def test_init_apm_with_config_object(recorder):
    config = APMConfig(service_name="explicit", auto_instrument=False, handle_sigterm=False)
    handle = init_apm(config, exporters=recorder.exporter_set())

    assert handle.config is config


def test_shutdown_twice(recorder):
    handle = start(recorder)

    shutdown()
    shutdown()

    assert handle.pipeline.is_shut_down
    assert bootstrap.get_pipeline() is None
    assert recorder.span_exporter.shutdown_calls == 1


def test_shutdown_without_init():
    shutdown()
    assert bootstrap.get_pipeline() is None


def test_ashutdown(recorder):
    handle = start(recorder)

    asyncio.run(ashutdown())
    asyncio.run(ashutdown())

    assert handle.pipeline.is_shut_down
    assert recorder.span_exporter.shutdown_calls == 1


def test_reinit_shuts_down_previous(recorder):
    first = start(recorder)
    second = start(recorder)

    assert first.pipeline.is_shut_down
    assert not second.pipeline.is_shut_down
    assert bootstrap.get_pipeline() is second.pipeline


def test_reinit_swallows_previous_shutdown_errors(recorder, monkeypatch):
    first = start(recorder)

    def explode():
        raise RuntimeError("collector gone")

    monkeypatch.setattr(first.pipeline, "shutdown", explode)

    second = start(recorder)
    assert bootstrap.get_pipeline() is second.pipeline


def test_create_default_logger(recorder):
    start(recorder, service_name="orders", environment="prod", create_default_logger=True)

    logger = get_logger()
    assert logger is not None
    assert logger.service_name == "orders"
    assert logger.environment == "prod"


def test_no_default_logger_unless_asked(recorder):
    start(recorder)
    assert get_logger() is None


def test_set_logger():
    logger = create_logger("manual")
    set_logger(logger)
    assert get_logger() is logger


def test_sigterm_handler_shuts_down_and_exits(recorder):
    handle = start(recorder)

    with pytest.raises(SystemExit) as exc_info:
        bootstrap._handle_sigterm(signal.SIGTERM, None)

    assert exc_info.value.code == 0
    assert handle.pipeline.is_shut_down


def test_sigterm_handler_installed_once(recorder, monkeypatch):
    installed = []
    monkeypatch.setattr(bootstrap, "_sigterm_installed", False)
    monkeypatch.setattr(bootstrap.signal, "signal", lambda sig, handler: installed.append((sig, handler)))

    start(recorder, handle_sigterm=True)
    start(recorder, handle_sigterm=True)

    assert installed == [(signal.SIGTERM, bootstrap._handle_sigterm)]


def test_keywords_replace_config_fields(recorder):
    config = APMConfig(service_name="explicit", auto_instrument=False, handle_sigterm=False)
    handle = init_apm(config, exporters=recorder.exporter_set(), service_name="replaced")

    assert handle.config.service_name == "replaced"
    assert handle.config.auto_instrument is False
    assert config.service_name == "explicit"


def test_unknown_keyword_with_config_rejected(recorder):
    config = APMConfig(auto_instrument=False, handle_sigterm=False)

    with pytest.raises(TypeError):
        init_apm(config, exporters=recorder.exporter_set(), colector_url="http://typo")
    assert bootstrap.get_pipeline() is None


def span_names(recorder):
    return [span.name for span in recorder.span_exporter.spans]


def metric_names(recorder):
    return [
        metric.name
        for batch in recorder.metric_exporter.batches
        for resource_metrics in batch.resource_metrics
        for scope_metrics in resource_metrics.scope_metrics
        for metric in scope_metrics.metrics
    ]


def test_global_tracer_follows_reinit(recorder, next_recorder):
    """Spans from the global API reach the exporter of the latest init_apm()."""
    first, second = recorder, next_recorder
    start(first)
    early_tracer = trace.get_tracer("early")

    start(second)
    with trace.get_tracer("app").start_as_current_span("after-reinit"):
        pass
    with early_tracer.start_as_current_span("early-tracer"):
        pass
    shutdown()

    assert span_names(first) == []
    assert span_names(second) == ["after-reinit", "early-tracer"]


def test_global_tracer_after_first_init(recorder):
    start(recorder)

    with trace.get_tracer("app").start_as_current_span("first-init"):
        pass
    shutdown()

    assert span_names(recorder) == ["first-init"]


def test_instruments_follow_reinit(recorder, next_recorder):
    """A counter created before re-init records into the new pipeline."""
    first, second = recorder, next_recorder
    start(first, metric_export_interval_millis=60_000)
    counter = metrics.get_meter("app").create_counter("orders")

    start(second, metric_export_interval_millis=60_000)
    counter.add(3)
    shutdown()

    assert "orders" not in metric_names(first)
    assert "orders" in metric_names(second)


def test_global_providers_are_noop_after_shutdown(recorder):
    start(recorder)
    shutdown()

    span = trace.get_tracer("app").start_span("late")
    span.end()

    assert not span.is_recording()
    assert span_names(recorder) == []
