"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry
import structlog

from .config import Settings, settings

SERVICE_NAME = "tourbook-api"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created in PENDING state',
    registry=REGISTRY
)

BOOKING_TRANSITIONS = Counter(
    'booking_transitions_total',
    'Booking status transitions applied',
    ['from_status', 'to_status', 'trigger'],
    registry=REGISTRY
)

SLOT_MOVEMENTS = Counter(
    'tour_slots_moved_total',
    'Slots reserved or released on tours',
    ['direction'],
    registry=REGISTRY
)

CAPACITY_REJECTIONS = Counter(
    'booking_capacity_rejections_total',
    'Reservations refused for lack of tour capacity',
    registry=REGISTRY
)

PAYMENT_VERIFICATIONS = Counter(
    'payment_verifications_total',
    'Payment verification results by normalized status',
    ['status'],
    registry=REGISTRY
)

PAYMENT_GATEWAY_ERRORS = Counter(
    'payment_gateway_errors_total',
    'Transient payment gateway failures',
    ['operation'],
    registry=REGISTRY
)

NOTIFICATION_FAILURES = Counter(
    'notification_failures_total',
    'Notifications that failed or timed out',
    ['kind'],
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource(app_name: str) -> Resource:
    return Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing(app_name: str = SERVICE_NAME, config: Settings = settings):
    """Setup OpenTelemetry tracing; spans are exported only when an OTLP endpoint is configured."""
    provider = TracerProvider(resource=_resource(app_name))
    if config.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=config.otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
    trace.set_tracer_provider(provider)

    return provider.get_tracer(__name__)


def setup_metrics(app_name: str = SERVICE_NAME, config: Settings = settings):
    """Setup OpenTelemetry metrics; without an OTLP endpoint the default no-op meter is kept."""
    if config.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=config.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(app_name), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
        """Record one HTTP request."""
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration_seconds)

    @staticmethod
    def record_booking_created():
        """Record a booking creation."""
        BOOKINGS_CREATED.inc()

    @staticmethod
    def record_transition(from_status: str, to_status: str, trigger: str):
        """Record a booking status transition."""
        BOOKING_TRANSITIONS.labels(from_status=from_status, to_status=to_status, trigger=trigger).inc()

    @staticmethod
    def record_slots(direction: str, count: int):
        """Record slots reserved or released."""
        SLOT_MOVEMENTS.labels(direction=direction).inc(count)

    @staticmethod
    def record_capacity_rejection():
        """Record a reservation refused for lack of capacity."""
        CAPACITY_REJECTIONS.inc()

    @staticmethod
    def record_payment_verification(status: str):
        """Record a normalized payment verification result."""
        PAYMENT_VERIFICATIONS.labels(status=status).inc()

    @staticmethod
    def record_gateway_error(operation: str):
        """Record a transient payment gateway failure."""
        PAYMENT_GATEWAY_ERRORS.labels(operation=operation).inc()

    @staticmethod
    def record_notification_failure(kind: str):
        """Record a failed or timed-out notification."""
        NOTIFICATION_FAILURES.labels(kind=kind).inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


def get_logger(name: str):
    """Get a structured logger bound to a component name."""
    return structlog.get_logger(name).bind(component=name)
