"""
OpenTelemetry helpers for bootstrap runs.

The orchestrator opens one span per run and one per executed step and
counts step results. Without a configured provider the OTel API is a no-op;
``configure_otel_providers`` wires OTLP export for the CLI.

Usage::

    from snesdev.telemetry import get_tracer, record_step_result

    with get_tracer().start_as_current_span("bootstrap.step"):
        ...
    record_step_result("install_sdk", "completed", required=True)
"""

from __future__ import annotations

import logging
from typing import Optional

from opentelemetry import metrics, trace

__all__ = [
    "get_tracer",
    "add_span_event",
    "record_step_result",
    "configure_otel_providers",
    "flush_otel_providers",
]

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "snesdev.orchestrator"
STEP_COUNTER_NAME = "snesdev.bootstrap.steps"

_step_counter = None


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(INSTRUMENTATION_NAME)


def add_span_event(name: str, attributes: dict[str, str | int | float | bool]) -> None:
    """Add an event to the current OTel span if it is recording."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name=name, attributes=attributes)


def _get_step_counter():
    global _step_counter
    if _step_counter is None:
        meter = metrics.get_meter(INSTRUMENTATION_NAME)
        _step_counter = meter.create_counter(
            STEP_COUNTER_NAME,
            unit="1",
            description="Bootstrap steps by final status",
        )
    return _step_counter


def record_step_result(step_name: str, status: str, required: bool) -> None:
    _get_step_counter().add(
        1,
        {"step.name": step_name, "step.status": status, "step.required": required},
    )


def configure_otel_providers(endpoint: str, service_name: str = "snesdev") -> bool:
    """
    Configure global OTel providers with OTLP exporters.

    Args:
        endpoint: OTLP endpoint (e.g., localhost:4317)
        service_name: ``service.name`` resource attribute

    Returns:
        True if configuration succeeded, False otherwise
    """
    global _step_counter
    try:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        resource = Resource.create({
            "service.name": service_name,
            "service.namespace": "snesdev",
        })

        tracer_provider = TracerProvider(resource=resource)
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
        trace.set_tracer_provider(tracer_provider)

        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=endpoint, insecure=True),
            export_interval_millis=5000,
        )
        metrics.set_meter_provider(
            MeterProvider(resource=resource, metric_readers=[metric_reader])
        )
        # Recreate the counter against the new provider
        _step_counter = None
        return True

    except Exception as e:
        logger.warning("Failed to configure OTel export to %s: %s", endpoint, e)
        return False


def flush_otel_providers(timeout_millis: Optional[int] = 10000) -> None:
    """Flush and shut down providers so all telemetry is exported."""
    for provider in (trace.get_tracer_provider(), metrics.get_meter_provider()):
        try:
            if hasattr(provider, "force_flush"):
                provider.force_flush(timeout_millis=timeout_millis)
            if hasattr(provider, "shutdown"):
                provider.shutdown()
        except Exception as e:
            logger.debug("Telemetry flush failed: %s", e)
