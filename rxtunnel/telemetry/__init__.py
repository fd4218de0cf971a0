"""OpenTelemetry helpers for rxtunnel components.

Provider setup, the structured :class:`OTelLogger`, the console exporter
used by the default providers, and the optional tunnel counters.
"""

from .config import (
    configure_metrics,
    configure_telemetry,
    get_default_providers,
)
from .exporters import ConsoleLogRecordExporter
from .logger import LogContext, OTelLogger, format_log_record
from .metrics import TunnelMetrics

__all__ = [
    # config
    "configure_telemetry",
    "configure_metrics",
    "get_default_providers",
    # logger
    "OTelLogger",
    "LogContext",
    "format_log_record",
    # exporters
    "ConsoleLogRecordExporter",
    # metrics
    "TunnelMetrics",
]
