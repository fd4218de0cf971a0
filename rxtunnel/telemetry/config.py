"""OTel provider setup for tunnel components.

Providers are built here and handed to :class:`~rxtunnel.tunnel.Tunnel`,
:class:`~rxtunnel.registry.TunnelRegistry` and friends explicitly. Nothing in
this module installs global providers.
"""

from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    LogRecordExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

from .exporters import ConsoleLogRecordExporter


def _resource(service_name: str, service_version: str) -> Resource:
    return Resource.create(
        {
            "service.name": service_name,
            "service.version": service_version,
        }
    )


def configure_telemetry(
    service_name: str = "rxtunnel",
    service_version: str = "",
    span_exporter: SpanExporter | None = None,
    log_exporter: LogRecordExporter | None = None,
    batch_logs: bool = True,
) -> tuple[TracerProvider, LoggerProvider]:
    """
    Build a tracer/logger provider pair sharing one resource.

    Args:
        service_name: Value of the ``service.name`` resource attribute.
        service_version: Value of the ``service.version`` resource attribute.
        span_exporter: Optional exporter attached with a batch processor.
        log_exporter: Optional log record exporter.
        batch_logs: Use a ``BatchLogRecordProcessor`` for ``log_exporter``
            when True (network exporters), a ``SimpleLogRecordProcessor``
            when False (console, tests).

    Returns:
        ``(TracerProvider, LoggerProvider)`` to inject into components.

    Example:
        >>> tracer_provider, logger_provider = configure_telemetry(
        ...     service_name="tunnel-client",
        ...     log_exporter=ConsoleLogRecordExporter(),
        ...     batch_logs=False,
        ... )
        >>> registry = TunnelRegistry(resolver, credentials,
        ...                           logger_provider=logger_provider)
    """
    resource = _resource(service_name, service_version)

    tracer_provider = TracerProvider(resource=resource)
    if span_exporter:
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    logger_provider = LoggerProvider(resource=resource)
    if log_exporter:
        processor = (
            BatchLogRecordProcessor(log_exporter)
            if batch_logs
            else SimpleLogRecordProcessor(log_exporter)
        )
        logger_provider.add_log_record_processor(processor)

    return tracer_provider, logger_provider


def configure_metrics(
    metric_exporter: MetricExporter,
    service_name: str = "rxtunnel",
    service_version: str = "",
    export_interval_ms: int = 10_000,
) -> MeterProvider:
    """Build a ``MeterProvider`` that periodically pushes to ``metric_exporter``.

    The result is meant for :class:`~rxtunnel.telemetry.metrics.TunnelMetrics`.
    """
    reader = PeriodicExportingMetricReader(
        metric_exporter, export_interval_millis=export_interval_ms
    )
    return MeterProvider(
        resource=_resource(service_name, service_version),
        metric_readers=[reader],
    )


# =============================================================================
# Default Providers
# =============================================================================


_default_tracer_provider: TracerProvider | None = None
_default_logger_provider: LoggerProvider | None = None


def get_default_providers(
    service_name: str = "rxtunnel",
) -> tuple[TracerProvider, LoggerProvider]:
    """Return the process-wide fallback providers, creating them on first use.

    The fallback writes human-readable lines to stderr without batching. It is
    used by components constructed without an explicit ``logger_provider``.
    ``service_name`` only matters for the first call.
    """
    global _default_tracer_provider, _default_logger_provider

    if _default_logger_provider is None:
        _default_tracer_provider, _default_logger_provider = configure_telemetry(
            service_name=service_name,
            log_exporter=ConsoleLogRecordExporter(),
            batch_logs=False,
        )

    assert _default_tracer_provider is not None
    return _default_tracer_provider, _default_logger_provider
