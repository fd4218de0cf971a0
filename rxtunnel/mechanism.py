"""Core error types for :mod:`rxtunnel`.

Every terminal outcome of a tunnel is reported as a :class:`TunnelException`
subclass on the tunnel's error stream and, if an ``open()`` call is still
pending, raised from it.
"""


class TunnelException(Exception):
    """Base class for all rxtunnel exceptions."""

    def __init__(
        self,
        exception: Exception | str,
        source: str = "Unknown",
        note: str = "",
    ):
        super().__init__(f"<{source}> {note}: {exception}")
        self.exception = exception
        self.source = source
        self.note = note

    def __str__(self):
        return f"<{self.source}> {self.note}: {self.exception}"


class GatewayResolutionError(TunnelException):
    """The gateway resolver failed before any channel was opened."""


class TunnelConnectError(TunnelException):
    """The control channel to the gateway could not be opened."""


class ProtocolError(TunnelException):
    """The gateway reported a failure with an ``error`` control message."""

    def __init__(self, details: str, source: str = "Unknown", note: str = "Gateway error"):
        super().__init__(details, source=source, note=note)
        self.details = details


class HandshakeTimeoutError(ProtocolError):
    """The handshake did not complete within the configured timeout."""

    def __init__(self, timeout: float, source: str = "Unknown"):
        super().__init__(
            f"handshake not completed within {timeout:g}s",
            source=source,
            note="Handshake timeout",
        )
        self.timeout = timeout


class BufferOverflowError(TunnelException):
    """Writes issued before the tunnel opened exceeded the pending limit."""


class TunnelClosedError(TunnelException):
    """The tunnel was closed before the handshake completed."""


class TunnelStateError(TunnelException):
    """An operation was attempted in a state that does not allow it."""


class ChannelClosed(Exception):
    """Raised by a channel when the underlying transport has ended."""
