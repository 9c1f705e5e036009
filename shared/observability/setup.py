import os
import logging
import structlog
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# OpenTelemetry
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

# Structlog processor: correlates log lines with the active request span
def add_otel_ids(logger, log_method, event_dict):
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    return event_dict

def _log_level() -> int:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO

# JSON lines on stdout; order, stock and bus events all log through this
def configure_logging(level: int | None = None):
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_otel_ids,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level if level is not None else _log_level()),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

# Spans for every HTTP request, shipped over OTLP gRPC
def configure_tracing(app: FastAPI, service_name: str, service_version: str = "unknown"):
    resource = Resource.create({SERVICE_NAME: service_name, SERVICE_VERSION: service_version})
    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)

    otlp_endpoint = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
    exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(exporter))

    FastAPIInstrumentor.instrument_app(app)

# HTTP latency/status histograms next to the business metrics, at /metrics
def configure_metrics(app: FastAPI):
    Instrumentator(excluded_handlers=["/health", "/metrics"]).instrument(app).expose(app)

def setup_observability(app: FastAPI, service_name: str):
    """
    Bootstraps logging, tracing and metrics for the store app.
    Call once per process, from the app factory.

    OTEL_ENABLED=0 skips the tracing exporter (local runs and tests).
    """
    configure_logging()
    if os.getenv("OTEL_ENABLED", "1") == "1":
        configure_tracing(app, service_name, app.version)
    configure_metrics(app)
