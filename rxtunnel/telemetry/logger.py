"""Structured logging for tunnels on top of the OTel logs API.

:class:`OTelLogger` gives components the usual ``debug``/``info``/``warning``/
``error`` calls and turns them into OTel log records. :class:`LogContext`
carries the tunnel dimensions (tunnel id, target, gateway) that are attached
to every record a logger emits.
"""

import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from opentelemetry._logs import LogRecord, SeverityNumber


@dataclass(frozen=True)
class LogContext:
    """Dimensional attributes attached to every record of a logger."""

    service: str = ""
    component: str = ""
    tunnel_id: str = ""
    target: str = ""
    gateway: str = ""

    def as_attributes(self) -> dict[str, str]:
        """Map the non-empty fields to OTel attribute names."""
        names = {
            "service": "service.name",
            "component": "component.name",
            "tunnel_id": "tunnel.id",
            "target": "tunnel.target",
            "gateway": "tunnel.gateway",
        }
        return {names[key]: value for key, value in asdict(self).items() if value}

    def child(self, **overrides: str) -> "LogContext":
        return LogContext(**{**asdict(self), **overrides})


def format_log_record(record: LogRecord) -> str:
    """
    Render a record as one console line.

    Format: ``YYYY-MM-DDTHH:MM:SSZ [LEVEL] source[ tunnel-id][ -> target]\\t: body``
    """
    timestamp_ns = record.timestamp or 0
    timestamp_str = datetime.fromtimestamp(timestamp_ns / 1e9, tz=UTC).strftime(
        "%Y-%m-%dT%H:%M:%SZ"
    )
    attrs = record.attributes or {}
    source = attrs.get("log.source", "Unknown")
    tunnel_id = attrs.get("tunnel.id", "")
    target = attrs.get("tunnel.target", "")

    where = str(source)
    if tunnel_id:
        where += f" {tunnel_id}"
    if target:
        where += f" -> {target}"

    return f"{timestamp_str} [{record.severity_text}] {where}\t: {record.body}\n"


class OTelLogger:
    """Logging facade that emits OTel log records.

    Example:
        >>> log = OTelLogger(provider.get_logger("rxtunnel"), source="Tunnel")
        >>> log = log.with_context(tunnel_id="a1b2c3d4", target="db:5432")
        >>> log.info("Tunnel relaying")
    """

    def __init__(
        self,
        logger,
        source: str,
        context: LogContext | None = None,
        min_severity: SeverityNumber | None = None,
    ):
        """
        Args:
            logger: OTel logger from ``LoggerProvider.get_logger()``.
            source: Value of the ``log.source`` attribute.
            context: Dimensions merged into every record.
            min_severity: Records below this severity are dropped.
        """
        self._logger = logger
        self._source = source
        self._context = context or LogContext()
        self._min_severity = min_severity

    def debug(self, message: str, **attrs) -> None:
        self._emit(SeverityNumber.DEBUG, "DEBUG", message, attrs)

    def info(self, message: str, **attrs) -> None:
        self._emit(SeverityNumber.INFO, "INFO", message, attrs)

    def warning(self, message: str, **attrs) -> None:
        self._emit(SeverityNumber.WARN, "WARN", message, attrs)

    def error(self, message: str, **attrs) -> None:
        self._emit(SeverityNumber.ERROR, "ERROR", message, attrs)

    def with_context(self, **overrides) -> "OTelLogger":
        """Derive a logger with extra dimensions.

        A ``source`` key replaces the source; every other key overrides the
        matching :class:`LogContext` field.
        """
        source = overrides.pop("source", self._source)
        return OTelLogger(
            self._logger,
            source=source,
            context=self._context.child(**overrides),
            min_severity=self._min_severity,
        )

    def _emit(
        self,
        severity_number: SeverityNumber,
        severity_text: str,
        message: str,
        attrs: dict,
    ) -> None:
        if self._min_severity and severity_number.value < self._min_severity.value:
            return
        record = LogRecord(
            timestamp=time.time_ns(),
            body=message,
            severity_text=severity_text,
            severity_number=severity_number,
            attributes={
                "log.source": self._source,
                **self._context.as_attributes(),
                **attrs,
            },
        )
        self._logger.emit(record)
