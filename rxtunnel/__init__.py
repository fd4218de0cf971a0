"""Convenience exports for the :mod:`rxtunnel` package."""

from .buffer import PendingWrites  # noqa: F401
from .channel import (  # noqa: F401
    Channel,
    ChannelFactory,
    WebSocketChannel,
    connect_websocket,
    decode_control,
    encode_control,
)
from .config import AppVersion, ConfigStateError, ConfigStore, RemoteConfig  # noqa: F401
from .connector import AppConnector  # noqa: F401
from .gateway import APIError, ConnectorAPI, Gateway, GatewayResolver  # noqa: F401
from .mechanism import (  # noqa: F401
    BufferOverflowError,
    ChannelClosed,
    GatewayResolutionError,
    HandshakeTimeoutError,
    ProtocolError,
    TunnelClosedError,
    TunnelConnectError,
    TunnelException,
    TunnelStateError,
)
from .registry import TunnelRegistry  # noqa: F401
from .tunnel import (  # noqa: F401
    GatewayCredentials,
    Tunnel,
    TunnelSettings,
    TunnelState,
    TunnelTarget,
)

__all__ = [
    # errors
    "TunnelException",
    "GatewayResolutionError",
    "TunnelConnectError",
    "ProtocolError",
    "HandshakeTimeoutError",
    "BufferOverflowError",
    "TunnelClosedError",
    "TunnelStateError",
    "ChannelClosed",

    # tunnel
    "Tunnel",
    "TunnelState",
    "TunnelTarget",
    "TunnelSettings",
    "GatewayCredentials",
    "PendingWrites",
    "TunnelRegistry",

    # channel
    "Channel",
    "ChannelFactory",
    "WebSocketChannel",
    "connect_websocket",
    "encode_control",
    "decode_control",

    # gateway / web API
    "Gateway",
    "GatewayResolver",
    "ConnectorAPI",
    "APIError",

    # config
    "RemoteConfig",
    "AppVersion",
    "ConfigStore",
    "ConfigStateError",

    # facade
    "AppConnector",
]
