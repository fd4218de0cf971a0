"""Application-level entry point for the web client.

:class:`AppConnector` wires the connector API, the tunnel registry and the
config store together and exposes what the hosted application asks of its
environment: sockets to remote hosts, config load/save, version and plugin
information.

Example:
    >>> connector = AppConnector(
    ...     "https://app.example.com",
    ...     GatewayCredentials(auth_token=user.gateway_token),
    ... )
    >>> connector.set_state(RemoteConfig(id=config_id, content=text), AppVersion("1.0.3"))
    >>> tunnel = connector.create_tunnel()
    >>> await tunnel.open(TunnelTarget("ssh.example.net", 22))
    >>> ...
    >>> await connector.aclose()
"""

import httpx
from opentelemetry.metrics import MeterProvider
from opentelemetry.sdk._logs import LoggerProvider

from .channel import ChannelFactory, connect_websocket
from .config import AppVersion, ConfigStore, RemoteConfig
from .gateway import ConnectorAPI, Gateway
from .registry import TunnelRegistry
from .tunnel import GatewayCredentials, Tunnel, TunnelSettings

DEFAULT_PLUGINS = (
    "tabby-core",
    "tabby-settings",
    "tabby-terminal",
    "tabby-ssh",
    "tabby-community-color-schemes",
    "tabby-web",
)


class AppConnector:
    """Facade over :class:`ConnectorAPI`, :class:`TunnelRegistry` and
    :class:`ConfigStore`.

    Args:
        base_url: Root URL of the connector web API.
        credentials: Gateway token and optional fixed gateway URL.
        settings: Settings applied to every tunnel.
        http_client: ``httpx.AsyncClient`` to share with the API client.
        channel_factory: Tunnel transport.
        autosave_delay: Debounce for config persistence, in seconds.
        dist_url: Where the application bundle is served from.
        plugins: Plugins the application should load.
        logger_provider: OTel logger provider for every component.
        meter_provider: Enables tunnel metrics when given.
    """

    def __init__(
        self,
        base_url: str,
        credentials: GatewayCredentials,
        settings: TunnelSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
        channel_factory: ChannelFactory = connect_websocket,
        autosave_delay: float = 1.0,
        dist_url: str = "../app-dist",
        plugins: tuple[str, ...] = DEFAULT_PLUGINS,
        logger_provider: LoggerProvider | None = None,
        meter_provider: MeterProvider | None = None,
    ):
        self.api = ConnectorAPI(base_url, client=http_client)
        self.credentials = credentials
        self.registry = TunnelRegistry(
            self.api.choose_gateway,
            credentials,
            settings=settings,
            channel_factory=channel_factory,
            logger_provider=logger_provider,
            meter_provider=meter_provider,
        )
        self.config = ConfigStore(
            self.api.patch_config,
            debounce=autosave_delay,
            logger_provider=logger_provider,
        )
        self._dist_url = dist_url
        self._plugins = tuple(plugins)

    # ---------------- tunnels ---------------- #

    def create_tunnel(self, name: str | None = None) -> Tunnel:
        return self.registry.create_tunnel(name)

    @property
    def tunnels(self) -> tuple[Tunnel, ...]:
        return self.registry.active

    async def choose_gateway(self) -> Gateway:
        return await self.api.choose_gateway()

    # ---------------- config ---------------- #

    def set_state(self, config: RemoteConfig, version: AppVersion) -> None:
        self.config.set_state(config, version)

    async def load_config(self) -> str:
        return await self.config.load()

    async def save_config(self, content: str) -> None:
        await self.config.save(content)

    # ---------------- app info ---------------- #

    @property
    def app_version(self) -> str:
        return self.config.app_version

    @property
    def dist_url(self) -> str:
        return self._dist_url

    @property
    def plugins_to_load(self) -> list[str]:
        return list(self._plugins)

    async def aclose(self) -> None:
        """Close every tunnel, finish running persists, release the API client."""
        self.registry.close_all()
        self.config.dispose()
        await self.config.flush()
        await self.api.aclose()
