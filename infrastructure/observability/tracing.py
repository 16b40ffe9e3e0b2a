"""
OpenTelemetry tracing for order intake and settlement.

``tracer`` is importable everywhere; until ``setup_tracing`` installs a real
provider it hands out non-recording spans, so tests and management commands
run without a collector.
"""

import logging
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.django import DjangoInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

tracer = trace.get_tracer("marketBackend")

_configured = False


def setup_tracing(service_name: str = "market-backend", endpoint: Optional[str] = None, enable: bool = True) -> bool:
    """
    Export spans over OTLP/HTTP and instrument Django requests.

    ``endpoint`` is the collector's traces URL (e.g. http://localhost:4318/v1/traces);
    None lets the exporter read OTEL_EXPORTER_OTLP_TRACES_ENDPOINT. Returns
    True only on the call that actually installed the provider.
    """
    global _configured

    if not enable:
        logger.info("Tracing disabled")
        return False
    if _configured:
        return False

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    DjangoInstrumentor().instrument()

    _configured = True
    logger.info(f"Tracing {service_name} to {endpoint or 'the default OTLP endpoint'}")
    return True


def add_span_attributes(span: trace.Span, **attributes) -> None:
    """Set attributes, stringifying values OpenTelemetry cannot store as-is."""
    for key, value in attributes.items():
        if not isinstance(value, (str, bool, int, float)):
            value = str(value)
        span.set_attribute(key, value)
