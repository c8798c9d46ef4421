"""OpenTelemetry wiring for indexer runs.

The indexer is a finite batch job rather than a long-lived server, so the
providers created here are handed back to the caller, which must call
:meth:`IndexerTelemetry.shutdown` before exit to flush buffered spans,
metrics and log records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes
from sqlalchemy.ext.asyncio import AsyncEngine

from transfer_indexer import __version__
from transfer_indexer.config import IndexerSettings

logger = logging.getLogger(__name__)

_METRIC_EXPORT_INTERVAL_MS = 5000


@dataclass
class IndexerTelemetry:
    """Providers installed for one run; empty when telemetry is disabled."""

    tracer_provider: TracerProvider | None = None
    meter_provider: MeterProvider | None = None
    logger_provider: LoggerProvider | None = None
    instrumentors: list[Any] = field(default_factory=list)

    @property
    def enabled(self) -> bool:
        return self.tracer_provider is not None

    def shutdown(self) -> None:
        """Flush exporters and remove instrumentation."""

        global _active  # noqa: PLW0603

        if _active is self:
            _active = None
        for instrumentor in reversed(self.instrumentors):
            instrumentor.uninstrument()
        self.instrumentors.clear()
        for provider in (self.tracer_provider, self.meter_provider, self.logger_provider):
            if provider is not None:
                provider.shutdown()


_active: IndexerTelemetry | None = None


def setup_telemetry(settings: IndexerSettings, engine: AsyncEngine | None = None) -> IndexerTelemetry:
    """Install OTLP exporters for this run, or return a disabled handle."""

    global _active  # noqa: PLW0603 - one set of global providers per process

    if _active is not None:
        return _active
    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return IndexerTelemetry()

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: settings.blockchain,
            ResourceAttributes.SERVICE_VERSION: __version__,
            "indexer.price_strategy": settings.price_strategy,
        }
    )
    exporter_options: dict[str, Any] = {"insecure": settings.telemetry_otlp_insecure}
    if settings.telemetry_otlp_endpoint:
        exporter_options["endpoint"] = settings.telemetry_otlp_endpoint

    telemetry = IndexerTelemetry(
        tracer_provider=_tracer_provider(resource, settings.telemetry_sample_ratio, exporter_options),
        meter_provider=_meter_provider(resource, exporter_options),
        logger_provider=_logger_provider(resource, exporter_options),
    )
    trace.set_tracer_provider(telemetry.tracer_provider)
    metrics.set_meter_provider(telemetry.meter_provider)
    set_logger_provider(telemetry.logger_provider)

    logging_instrumentor = LoggingInstrumentor()
    logging_instrumentor.instrument(set_logging_format=False)
    telemetry.instrumentors.append(logging_instrumentor)

    httpx_instrumentor = HTTPXClientInstrumentor()
    httpx_instrumentor.instrument(tracer_provider=telemetry.tracer_provider)
    telemetry.instrumentors.append(httpx_instrumentor)

    if engine is not None:
        sqlalchemy_instrumentor = SQLAlchemyInstrumentor()
        sqlalchemy_instrumentor.instrument(
            engine=engine.sync_engine,
            tracer_provider=telemetry.tracer_provider,
        )
        telemetry.instrumentors.append(sqlalchemy_instrumentor)

    _active = telemetry
    logger.info("Telemetry exporting to %s", settings.telemetry_otlp_endpoint or "the default OTLP endpoint")
    return telemetry


def _tracer_provider(resource: Resource, sample_ratio: float, exporter_options: dict[str, Any]) -> TracerProvider:
    provider = TracerProvider(resource=resource, sampler=ParentBased(TraceIdRatioBased(sample_ratio)))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_options)))
    return provider


def _meter_provider(resource: Resource, exporter_options: dict[str, Any]) -> MeterProvider:
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(**exporter_options),
        export_interval_millis=_METRIC_EXPORT_INTERVAL_MS,
    )
    return MeterProvider(resource=resource, metric_readers=[reader])


def _logger_provider(resource: Resource, exporter_options: dict[str, Any]) -> LoggerProvider:
    provider = LoggerProvider(resource=resource)
    provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**exporter_options)))
    return provider


__all__ = ["IndexerTelemetry", "setup_telemetry"]
