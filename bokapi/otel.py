import logging

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import format_span_id, format_trace_id, get_current_span

from .config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _log_hook(logger, log_record):
    span = get_current_span()
    context = span.get_span_context() if span else None
    if context and context.is_valid:
        log_record.attributes["trace_id"] = format_trace_id(context.trace_id)
        log_record.attributes["span_id"] = format_span_id(context.span_id)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def _tracer_provider(resource: Resource, endpoint: str) -> TracerProvider:
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")))
    return provider


def _meter_provider(resource: Resource, endpoint: str, interval_ms: int) -> MeterProvider:
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"),
        export_interval_millis=interval_ms,
    )
    return MeterProvider(resource=resource, metric_readers=[reader])


def _logger_provider(resource: Resource, endpoint: str) -> LoggerProvider:
    provider = LoggerProvider(resource=resource)
    provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(endpoint=f"{endpoint}/v1/logs")))
    return provider


def configure_otel(app: FastAPI, settings: Settings) -> None:
    """Ship traces, metrics and logs of ``app`` to an OTLP/HTTP collector.

    Health checks are left out of the request spans.
    """
    endpoint = settings.otel_endpoint.rstrip("/")
    resource = Resource.create({"service.name": settings.otel_service_name, "service.version": settings.version})

    tracer_provider = _tracer_provider(resource, endpoint)
    meter_provider = _meter_provider(resource, endpoint, settings.otel_metric_interval_ms)
    logger_provider = _logger_provider(resource, endpoint)
    trace.set_tracer_provider(tracer_provider)
    metrics.set_meter_provider(meter_provider)
    set_logger_provider(logger_provider)

    LoggingInstrumentor().instrument(set_logging_format=False, log_hook=_log_hook)
    logging.getLogger().addHandler(LoggingHandler(level=logging.INFO, logger_provider=logger_provider))

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        excluded_urls="/api/v1/health",
    )
