# telemetry.py — Optional OpenTelemetry tracing for the task board API
"""
Tracing stays off unless OTEL_EXPORTER_OTLP_ENDPOINT is set and the
`telemetry` extra is installed. The activity logger reports the failures it
swallows through `record_exception`, so they still show up on the request span.
"""
import os
import logging

logger = logging.getLogger("taskboard.telemetry")

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "taskboard-api")
SERVICE_VERSION = "1.0.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")


def _build_provider():
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    provider = TracerProvider(resource=Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "deployment.environment": ENVIRONMENT,
    }))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=OTLP_ENDPOINT, insecure=True)))
    trace.set_tracer_provider(provider)
    return provider


def _instrument(app, provider) -> None:
    from database import engine

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health", tracer_provider=provider)
    except ImportError:
        logger.warning("opentelemetry-instrumentation-fastapi not installed; requests are not traced")

    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)
    except ImportError:
        logger.warning("opentelemetry-instrumentation-sqlalchemy not installed; queries are not traced")


def setup_telemetry(app):
    """Export request and query spans to the OTLP collector, if one is configured."""
    if not OTLP_ENDPOINT:
        logger.info("Tracing disabled (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None
    try:
        provider = _build_provider()
    except ImportError:
        logger.info("OpenTelemetry SDK not installed, tracing disabled")
        return None
    except Exception as e:
        logger.error(f"OpenTelemetry setup failed: {e}")
        return None

    _instrument(app, provider)
    logger.info(f"Tracing {SERVICE_NAME} {SERVICE_VERSION} to {OTLP_ENDPOINT}")
    return provider


def record_exception(exc: BaseException) -> None:
    """Attach an exception to the active span, if tracing is available."""
    try:
        from opentelemetry import trace
    except ImportError:
        return
    span = trace.get_current_span()
    if span.is_recording():
        span.record_exception(exc)
