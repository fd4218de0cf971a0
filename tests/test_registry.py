"""Tests for rxtunnel.registry - tunnel creation and liveness tracking."""

import asyncio

import pytest

from conftest import drive_handshake, settle, static_gateway
from rxtunnel.registry import TunnelRegistry
from rxtunnel.tunnel import Tunnel, TunnelSettings, TunnelState


@pytest.fixture
def registry(logger_provider, channel_factory, credentials):
    return TunnelRegistry(
        static_gateway,
        credentials,
        channel_factory=channel_factory,
        logger_provider=logger_provider,
    )


def test_created_tunnels_are_active(registry):
    tunnels = [registry.create_tunnel() for _ in range(3)]
    assert len(registry) == 3
    assert registry.active == tuple(tunnels)
    assert list(registry) == tunnels
    assert all(t in registry for t in tunnels)
    assert len({t.tunnel_id for t in tunnels}) == 3


def test_closed_tunnels_leave(registry):
    a, b, c = (registry.create_tunnel() for _ in range(3))
    b.close()
    assert registry.active == (a, c)
    assert b not in registry
    b.close()
    assert len(registry) == 2


def test_close_all(registry):
    tunnels = [registry.create_tunnel() for _ in range(4)]
    registry.close_all()
    assert len(registry) == 0
    assert all(t.state is TunnelState.CLOSED for t in tunnels)


def test_close_all_with_error(registry):
    tunnel = registry.create_tunnel()
    errors = []
    tunnel.errors.subscribe(on_next=errors.append)
    registry.close_all(RuntimeError("shutting down"))
    assert len(errors) == 1
    assert isinstance(errors[0].exception, RuntimeError)


def test_foreign_objects_not_contained(registry, make_tunnel):
    assert "tunnel" not in registry
    assert make_tunnel() not in registry


def test_named_tunnel(registry):
    tunnel = registry.create_tunnel(name="ssh-session")
    assert tunnel.name == "ssh-session"
    assert isinstance(tunnel, Tunnel)


def test_settings_shared(logger_provider, channel_factory, credentials):
    registry = TunnelRegistry(
        static_gateway,
        credentials,
        settings=TunnelSettings(max_pending_bytes=2),
        channel_factory=channel_factory,
        logger_provider=logger_provider,
    )
    tunnel = registry.create_tunnel()
    tunnel.write(b"123")
    assert tunnel.state is TunnelState.CLOSED
    assert len(registry) == 0


def test_tunnel_leaves_on_remote_close(registry, channel_factory):
    async def scenario():
        tunnel = registry.create_tunnel()
        channel = await drive_handshake(tunnel, channel_factory)
        assert tunnel in registry
        channel.remote_close()
        await settle()
        assert tunnel not in registry

    asyncio.run(scenario())
