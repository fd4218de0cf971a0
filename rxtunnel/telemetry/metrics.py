"""Tunnel counters on top of the OTel metrics API."""

from opentelemetry.metrics import Counter, Meter, MeterProvider


class TunnelMetrics:
    """Counters shared by the tunnels of one registry.

    Every method is a no-op when the instance was built without a meter
    provider, so components can call them unconditionally.

    Args:
        meter_provider: Provider to obtain the ``rxtunnel`` meter from, or
            ``None`` to disable metrics.
    """

    def __init__(self, meter_provider: MeterProvider | None = None):
        self._opened: Counter | None = None
        self._failed: Counter | None = None
        self._bytes_out: Counter | None = None
        self._bytes_in: Counter | None = None
        if meter_provider is None:
            return

        meter: Meter = meter_provider.get_meter("rxtunnel")
        self._opened = meter.create_counter(
            "rxtunnel.tunnels.opened", description="Tunnels that reached relaying"
        )
        self._failed = meter.create_counter(
            "rxtunnel.tunnels.failed", description="Tunnels closed with an error"
        )
        self._bytes_out = meter.create_counter(
            "rxtunnel.bytes.outbound", description="Payload bytes sent", unit="By"
        )
        self._bytes_in = meter.create_counter(
            "rxtunnel.bytes.inbound", description="Payload bytes received", unit="By"
        )

    @property
    def enabled(self) -> bool:
        return self._opened is not None

    def tunnel_opened(self, gateway: str) -> None:
        if self._opened is not None:
            self._opened.add(1, {"gateway": gateway})

    def tunnel_failed(self, reason: str) -> None:
        if self._failed is not None:
            self._failed.add(1, {"reason": reason})

    def bytes_sent(self, size: int) -> None:
        if self._bytes_out is not None and size:
            self._bytes_out.add(size)

    def bytes_received(self, size: int) -> None:
        if self._bytes_in is not None and size:
            self._bytes_in.add(size)
