"""Message channel to the connection gateway.

A tunnel talks to its gateway through a :class:`Channel`: an ordered,
bidirectional stream of messages where each message is either a text frame
(control) or a binary frame (payload). :class:`WebSocketChannel` is the
default implementation on top of a ``websockets`` client connection.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol

import websockets
from websockets import ClientConnection

from ..mechanism import ChannelClosed
from ..utils import get_short_error_info


class Channel(Protocol):
    """Ordered message channel exclusively owned by one tunnel."""

    async def send(self, message: str | bytes) -> None:
        """Send one frame: ``str`` as text, ``bytes`` as binary.

        Raises:
            ChannelClosed: The channel can no longer carry frames.
        """
        ...

    async def recv(self) -> str | bytes:
        """Wait for the next frame.

        Raises:
            ChannelClosed: The remote end closed or the connection failed.
        """
        ...

    async def close(self) -> None:
        """Close the channel. Must tolerate an already closed transport."""
        ...


ChannelFactory = Callable[[str], Awaitable[Channel]]


class WebSocketChannel:
    """:class:`Channel` over a ``websockets`` client connection."""

    def __init__(self, connection: ClientConnection):
        self._ws = connection

    @property
    def connection(self) -> ClientConnection:
        return self._ws

    async def send(self, message: str | bytes) -> None:
        try:
            await self._ws.send(message)
        except websockets.ConnectionClosed as e:
            raise ChannelClosed(get_short_error_info(e)) from e
        except OSError as e:
            raise ChannelClosed(get_short_error_info(e)) from e

    async def recv(self) -> str | bytes:
        try:
            return await self._ws.recv()
        except websockets.ConnectionClosed as e:
            raise ChannelClosed(get_short_error_info(e)) from e
        except OSError as e:
            raise ChannelClosed(get_short_error_info(e)) from e

    async def close(self) -> None:
        await self._ws.close()


async def connect_websocket(
    url: str,
    *,
    open_timeout: float | None = 10.0,
    ping_interval: float | None = 30.0,
    ping_timeout: float | None = 30.0,
) -> WebSocketChannel:
    """Open a websocket to ``url`` and wrap it as a :class:`Channel`.

    Frames are unbounded in size; payload boundaries are whatever the caller
    writes. Use :func:`functools.partial` to bind non-default options when
    passing this as a ``channel_factory``.
    """
    connection = await websockets.connect(
        url,
        open_timeout=open_timeout,
        ping_interval=ping_interval,
        ping_timeout=ping_timeout,
        max_size=None,
    )
    return WebSocketChannel(connection)
