"""Factory and liveness tracking for tunnels.

Example:
    >>> registry = TunnelRegistry(api.choose_gateway, credentials)
    >>> tunnel = registry.create_tunnel()
    >>> await tunnel.open(TunnelTarget("db.internal", 5432))
    >>> len(registry)
    1
    >>> tunnel.close()
    >>> len(registry)
    0
"""

import threading
from collections.abc import Iterator

from opentelemetry.metrics import MeterProvider
from opentelemetry.sdk._logs import LoggerProvider

from .channel import ChannelFactory, connect_websocket
from .gateway import GatewayResolver
from .telemetry import LogContext, OTelLogger, TunnelMetrics, get_default_providers
from .tunnel import GatewayCredentials, Tunnel, TunnelSettings


class TunnelRegistry:
    """Creates tunnels bound to shared collaborators and tracks live ones.

    A tunnel is active from :meth:`create_tunnel` until its ``closed`` event.
    The registry does not own tunnels; it only observes them.

    Args:
        gateway_resolver: Gateway lookup shared by every tunnel.
        credentials: Auth token and optional fixed gateway URL, read by each
            tunnel when it needs them.
        settings: Default :class:`TunnelSettings` for created tunnels.
        channel_factory: Transport used by created tunnels.
        logger_provider: OTel logger provider for the registry and its
            tunnels. Defaults to the console providers.
        meter_provider: Enables :class:`TunnelMetrics` when given.
    """

    def __init__(
        self,
        gateway_resolver: GatewayResolver,
        credentials: GatewayCredentials,
        settings: TunnelSettings | None = None,
        channel_factory: ChannelFactory = connect_websocket,
        logger_provider: LoggerProvider | None = None,
        meter_provider: MeterProvider | None = None,
    ):
        self._gateway_resolver = gateway_resolver
        self._credentials = credentials
        self._settings = settings or TunnelSettings()
        self._channel_factory = channel_factory
        self._metrics = TunnelMetrics(meter_provider)

        if logger_provider is None:
            _, logger_provider = get_default_providers("rxtunnel")
        self._logger_provider = logger_provider
        self._log = OTelLogger(
            logger_provider.get_logger("rxtunnel.registry"),
            source="TunnelRegistry",
            context=LogContext(component="TunnelRegistry"),
        )

        self._active: dict[Tunnel, None] = {}
        self._lock = threading.RLock()

    @property
    def credentials(self) -> GatewayCredentials:
        return self._credentials

    @property
    def active(self) -> tuple[Tunnel, ...]:
        """Snapshot of tunnels that have not closed yet, in creation order."""
        with self._lock:
            return tuple(self._active)

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)

    def __iter__(self) -> Iterator[Tunnel]:
        return iter(self.active)

    def __contains__(self, tunnel: object) -> bool:
        if not isinstance(tunnel, Tunnel):
            return False
        with self._lock:
            return tunnel in self._active

    def create_tunnel(self, name: str | None = None) -> Tunnel:
        """Build a tunnel and start tracking it. The caller opens it."""
        tunnel = Tunnel(
            self._gateway_resolver,
            self._credentials,
            settings=self._settings,
            channel_factory=self._channel_factory,
            name=name,
            logger_provider=self._logger_provider,
            metrics=self._metrics,
        )
        with self._lock:
            self._active[tunnel] = None
            count = len(self._active)

        tunnel.closed.subscribe(on_next=lambda _: self._forget(tunnel))
        self._log.debug(f"Created {tunnel.name} ({count} active)")
        return tunnel

    def _forget(self, tunnel: Tunnel) -> None:
        with self._lock:
            if tunnel not in self._active:
                return
            del self._active[tunnel]
            count = len(self._active)
        self._log.debug(f"Released {tunnel.name} ({count} active)")

    def close_all(self, error: Exception | None = None) -> None:
        """Close every active tunnel. Each one leaves through its close event."""
        tunnels = self.active
        if tunnels:
            self._log.info(f"Closing {len(tunnels)} active tunnel(s)")
        for tunnel in tunnels:
            tunnel.close(error)
