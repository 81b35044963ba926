import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from models import db

logger = logging.getLogger(__name__)

_provider = None


def init_tracing(app):
    """Install the tracer provider once per process and instrument ``app``.

    Tests collect spans in memory instead of shipping them to a collector.
    """
    global _provider
    if _provider is None:
        service_name = app.config.get("OTEL_SERVICE_NAME", "bs-shop-backend")
        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
        if app.config.get("TESTING"):
            provider.add_span_processor(SimpleSpanProcessor(InMemorySpanExporter()))
        else:
            endpoint = app.config.get("OTEL_EXPORTER_OTLP_ENDPOINT")
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)
        set_global_textmap(TraceContextTextMapPropagator())
        RequestsInstrumentor().instrument()
        _provider = provider
        logger.info("Tracing enabled for %s", service_name)

    FlaskInstrumentor().instrument_app(app)
    with app.app_context():
        SQLAlchemyInstrumentor().instrument(engine=db.engine)
