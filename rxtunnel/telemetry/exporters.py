"""Console log-record exporter for command-line use of tunnels."""

import sys
from collections.abc import Sequence

from opentelemetry.sdk._logs._internal import ReadableLogRecord
from opentelemetry.sdk._logs.export import LogRecordExporter, LogRecordExportResult

from .logger import format_log_record


class ConsoleLogRecordExporter(LogRecordExporter):
    """Write records to stderr as single human-readable lines.

    Example output::

        2026-10-19T10:30:00Z [INFO] Tunnel 5f1c2a9e -> db.internal:5432\t: Tunnel relaying
    """

    def __init__(self, stream=None):
        self._stream = stream

    @property
    def stream(self):
        # resolved lazily so that patched sys.stderr is honoured
        return self._stream if self._stream is not None else sys.stderr

    def export(self, batch: Sequence[ReadableLogRecord]) -> LogRecordExportResult:
        try:
            for readable_record in batch:
                self.stream.write(format_log_record(readable_record.log_record))
            self.stream.flush()
            return LogRecordExportResult.SUCCESS
        except (OSError, ValueError):
            return LogRecordExportResult.FAILURE

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        self.stream.flush()
        return True
