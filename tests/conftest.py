"""Shared test fixtures for rxtunnel tests."""

import asyncio
import json

import pytest

from rxtunnel.gateway import Gateway
from rxtunnel.mechanism import ChannelClosed
from rxtunnel.telemetry import configure_telemetry
from rxtunnel.tunnel import GatewayCredentials, Tunnel, TunnelTarget

GATEWAY_URL = "wss://gw-1.example.net/socket"
TARGET = TunnelTarget("db.internal", 5432)

_EOF = object()


class FakeChannel:
    """In-memory :class:`~rxtunnel.channel.Channel` driven by the test."""

    def __init__(self, url: str):
        self.url = url
        self.sent: list[str | bytes] = []
        self.close_calls = 0
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str | bytes) -> None:
        if self.close_calls:
            raise ChannelClosed("send on closed channel")
        self.sent.append(message)

    async def recv(self) -> str | bytes:
        item = await self._inbox.get()
        if item is _EOF:
            raise ChannelClosed("remote closed")
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self._inbox.put_nowait(_EOF)

    # ---- test helpers ----

    def feed(self, message: str | bytes) -> None:
        self._inbox.put_nowait(message)

    def feed_control(self, kind: str, **fields) -> None:
        self.feed(json.dumps({"_": kind, **fields}))

    def remote_close(self) -> None:
        self._inbox.put_nowait(_EOF)

    @property
    def control_sent(self) -> list[dict]:
        return [json.loads(m) for m in self.sent if isinstance(m, str)]

    @property
    def payload_sent(self) -> list[bytes]:
        return [m for m in self.sent if isinstance(m, bytes)]


class FakeChannelFactory:
    def __init__(self):
        self.urls: list[str] = []
        self.channels: list[FakeChannel] = []

    async def __call__(self, url: str) -> FakeChannel:
        self.urls.append(url)
        channel = FakeChannel(url)
        self.channels.append(channel)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


async def static_gateway() -> Gateway:
    return Gateway(url=GATEWAY_URL)


async def settle(rounds: int = 50) -> None:
    """Let queued callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def record_events(tunnel: Tunnel) -> list[tuple]:
    """Collect every event of ``tunnel`` in emission order."""
    events: list[tuple] = []
    tunnel.opened.subscribe(on_next=lambda _: events.append(("opened",)))
    tunnel.data.subscribe(on_next=lambda b: events.append(("data", b)))
    tunnel.errors.subscribe(on_next=lambda e: events.append(("error", e)))
    tunnel.closed.subscribe(on_next=lambda _: events.append(("closed",)))
    return events


async def drive_handshake(
    tunnel: Tunnel, factory: FakeChannelFactory, target: TunnelTarget = TARGET
) -> FakeChannel:
    """Open ``tunnel`` against a fake gateway that accepts everything."""
    task = asyncio.create_task(tunnel.open(target))
    await settle()
    channel = factory.last
    channel.feed_control("hello")
    await settle()
    channel.feed_control("ready")
    await settle()
    channel.feed_control("connected")
    await task
    await settle()
    return channel


@pytest.fixture
def logger_provider():
    """A logger provider without processors, so tests stay quiet."""
    _, provider = configure_telemetry(service_name="rxtunnel-tests")
    return provider


@pytest.fixture
def channel_factory():
    return FakeChannelFactory()


@pytest.fixture
def credentials():
    return GatewayCredentials(auth_token="secret-token")


@pytest.fixture
def make_tunnel(logger_provider, channel_factory, credentials):
    """Build tunnels wired to the fake channel factory."""

    def _make(resolver=static_gateway, **kwargs) -> Tunnel:
        kwargs.setdefault("channel_factory", channel_factory)
        kwargs.setdefault("logger_provider", logger_provider)
        return Tunnel(resolver, kwargs.pop("credentials", credentials), **kwargs)

    return _make
