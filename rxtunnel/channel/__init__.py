"""Gateway channel: control message codec and message transport."""

from .messages import (
    ClientMessage,
    Connect,
    Connected,
    GatewayError,
    Hello,
    HelloReply,
    Ready,
    ServerMessage,
    UnknownMessage,
    decode_control,
    encode_control,
)
from .transport import Channel, ChannelFactory, WebSocketChannel, connect_websocket

__all__ = [
    # messages
    "Hello",
    "Ready",
    "Connected",
    "GatewayError",
    "UnknownMessage",
    "ServerMessage",
    "HelloReply",
    "Connect",
    "ClientMessage",
    "encode_control",
    "decode_control",
    # transport
    "Channel",
    "ChannelFactory",
    "WebSocketChannel",
    "connect_websocket",
]
