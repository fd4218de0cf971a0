"""Gateway-mediated byte tunnel.

A :class:`Tunnel` owns one control channel to a connection gateway. After
``open()`` it resolves a gateway, connects, and runs the handshake::

    gateway                          tunnel
       | -------- {"_": "hello"} ------> |  AWAITING_HELLO
       | <-- {"_": "hello", version,  -- |
       |       auth_token}               |  AWAITING_READY
       | -------- {"_": "ready"} ------> |
       | <-- {"_": "connect", host, ---- |
       |       port}                     |  AWAITING_CONNECTED
       | ------ {"_": "connected"} ----> |
       | <======= raw payload =========> |  RELAYING

Text frames are control messages, binary frames are payload. Bytes written
before the gateway confirms the tunnel are buffered and sent as one frame
ahead of anything written afterwards.

State transitions:
    IDLE → RESOLVING_GATEWAY: open() called
    RESOLVING_GATEWAY → CONNECTING: gateway URL known
    CONNECTING → AWAITING_HELLO: channel connected
    AWAITING_HELLO → AWAITING_READY → AWAITING_CONNECTED → RELAYING: handshake
    any → CLOSED: close(), gateway error, remote close, timeout

Example:
    >>> tunnel = Tunnel(api.choose_gateway, GatewayCredentials(auth_token=token))
    >>> tunnel.data.subscribe(on_next=handle_bytes)
    >>> tunnel.write(b"early bytes are buffered")
    >>> await tunnel.open(TunnelTarget("db.internal", 5432))
    >>> tunnel.write(b"sent immediately")
    >>> tunnel.close()
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, TypeVar

from opentelemetry.sdk._logs import LoggerProvider
from reactivex import Observable
from reactivex.subject import Subject

from .buffer import PendingWrites
from .channel import (
    Channel,
    ChannelFactory,
    ClientMessage,
    Connect,
    Connected,
    GatewayError,
    Hello,
    HelloReply,
    Ready,
    ServerMessage,
    UnknownMessage,
    connect_websocket,
    decode_control,
    encode_control,
)
from .gateway import GatewayResolver
from .mechanism import (
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
from .telemetry import LogContext, OTelLogger, TunnelMetrics, get_default_providers
from .utils import describe_target, get_full_error_info, get_short_error_info

T = TypeVar("T")

DEFAULT_MAX_PENDING_BYTES = 8 * 1024 * 1024


class TunnelState(Enum):
    """Tunnel lifecycle states. ``CLOSED`` is terminal."""

    IDLE = auto()
    RESOLVING_GATEWAY = auto()
    CONNECTING = auto()
    AWAITING_HELLO = auto()
    AWAITING_READY = auto()
    AWAITING_CONNECTED = auto()
    RELAYING = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class TunnelTarget:
    """The host and port the gateway should connect the tunnel to."""

    host: str
    port: int

    def __post_init__(self):
        if not isinstance(self.host, str) or not self.host:
            raise ValueError("target host must be a non-empty string")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"target port must be an integer, got {self.port!r}")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"target port must be in 1..65535, got {self.port}")

    def __str__(self) -> str:
        return describe_target(self.host, self.port)


@dataclass
class GatewayCredentials:
    """Caller-owned gateway settings read by tunnels.

    Attributes:
        auth_token: Sent in the hello reply; read when the reply is built.
        gateway_url: Fixed gateway URL. When set, tunnels skip the resolver.
    """

    auth_token: str = ""
    gateway_url: str | None = None


@dataclass(frozen=True)
class TunnelSettings:
    """Per-tunnel limits.

    Attributes:
        handshake_timeout: Seconds from ``open()`` until the tunnel must be
            relaying. None waits forever.
        max_pending_bytes: Bound on bytes written before the tunnel opens.
            None means unbounded.
        protocol_version: Version announced in the hello reply.
    """

    handshake_timeout: float | None = 30.0
    max_pending_bytes: int | None = DEFAULT_MAX_PENDING_BYTES
    protocol_version: int = 1

    def __post_init__(self):
        if self.handshake_timeout is not None and self.handshake_timeout <= 0:
            raise ValueError(
                f"handshake_timeout must be > 0, got {self.handshake_timeout}"
            )
        if self.max_pending_bytes is not None and self.max_pending_bytes < 1:
            raise ValueError(
                f"max_pending_bytes must be >= 1, got {self.max_pending_bytes}"
            )


# Sender queue sentinel: drain, then close the channel.
_CLOSE = object()


def _consume_result(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


class Tunnel:
    """One relay session carrying one byte stream through a gateway.

    Event streams:
        opened: emits ``None`` once when the handshake completes.
        data: emits each received payload frame as ``bytes``.
        errors: emits at most one :class:`TunnelException`.
        closed: emits ``None`` once; terminal.

    All streams complete when the tunnel closes. The tunnel is also a
    ReactiveX observer: ``on_next`` writes, ``on_error`` closes with the
    error, ``on_completed`` closes.

    Args:
        gateway_resolver: Async callable returning the gateway to dial when
            ``credentials.gateway_url`` is not set.
        credentials: Shared auth token and optional fixed gateway URL.
        settings: Timeouts and buffer bound.
        channel_factory: Async callable opening a :class:`Channel` to a URL.
        name: Log source name. Defaults to ``"Tunnel:<id>"``.
        logger_provider: OTel logger provider. Falls back to the console
            providers from :func:`~rxtunnel.telemetry.get_default_providers`.
        metrics: Counters shared with sibling tunnels.
    """

    def __init__(
        self,
        gateway_resolver: GatewayResolver,
        credentials: GatewayCredentials,
        settings: TunnelSettings | None = None,
        channel_factory: ChannelFactory = connect_websocket,
        name: str | None = None,
        logger_provider: LoggerProvider | None = None,
        metrics: TunnelMetrics | None = None,
    ):
        self.tunnel_id = uuid.uuid4().hex[:8]
        self._name = name or f"Tunnel:{self.tunnel_id}"

        self._resolve_gateway = gateway_resolver
        self._credentials = credentials
        self._settings = settings or TunnelSettings()
        self._channel_factory = channel_factory
        self._metrics = metrics or TunnelMetrics()

        if logger_provider is None:
            _, logger_provider = get_default_providers("rxtunnel")
        self._log = OTelLogger(
            logger_provider.get_logger("rxtunnel.tunnel"),
            source=self._name,
            context=LogContext(component="Tunnel", tunnel_id=self.tunnel_id),
        )

        self._state = TunnelState.IDLE
        self._target: TunnelTarget | None = None
        self._gateway_url: str | None = None
        self._error: TunnelException | None = None
        self._pending = PendingWrites(self._settings.max_pending_bytes)

        # Exists only between CONNECTING and CLOSED
        self._channel: Channel | None = None
        self._outbound: asyncio.Queue[Any] | None = None
        self._sender_task: asyncio.Task | None = None
        self._receiver_task: asyncio.Task | None = None

        self._opened_future: asyncio.Future[None] | None = None
        self._timeout_handle: asyncio.TimerHandle | None = None

        self._opened: Subject[None] = Subject()
        self._data: Subject[bytes] = Subject()
        self._errors: Subject[TunnelException] = Subject()
        self._closed: Subject[None] = Subject()

    def __repr__(self) -> str:
        target = f" -> {self._target}" if self._target else ""
        return f"<Tunnel {self.tunnel_id} {self._state.name}{target}>"

    # ---------------- public state ---------------- #

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> TunnelState:
        return self._state

    @property
    def target(self) -> TunnelTarget | None:
        return self._target

    @property
    def gateway_url(self) -> str | None:
        return self._gateway_url

    @property
    def error(self) -> TunnelException | None:
        """The error the tunnel closed with, if any."""
        return self._error

    @property
    def pending_bytes(self) -> int:
        return self._pending.size()

    @property
    def opened(self) -> Observable[None]:
        return self._opened

    @property
    def data(self) -> Observable[bytes]:
        return self._data

    @property
    def errors(self) -> Observable[TunnelException]:
        return self._errors

    @property
    def closed(self) -> Observable[None]:
        return self._closed

    def _set_state(self, state: TunnelState) -> None:
        self._log.debug(f"State: {self._state.name} -> {state.name}")
        self._state = state

    # ---------------- opening ---------------- #

    async def open(self, target: TunnelTarget) -> None:
        """Resolve a gateway, connect, and run the handshake for ``target``.

        Returns once the tunnel is relaying.

        Raises:
            TunnelStateError: The tunnel was already opened.
            TunnelException: The tunnel closed before relaying. This is the
                error emitted on :attr:`errors`, or
                :class:`~rxtunnel.mechanism.TunnelClosedError` when it closed
                without one.
        """
        if self._state is not TunnelState.IDLE:
            raise TunnelStateError(
                f"cannot open a tunnel in state {self._state.name}",
                source=self._name,
                note="Tunnel.open",
            )

        loop = asyncio.get_running_loop()
        self._target = target
        self._log = self._log.with_context(target=str(target))
        opened = self._opened_future = loop.create_future()
        self._arm_handshake_timeout(loop)

        try:
            self._set_state(TunnelState.RESOLVING_GATEWAY)
            url = self._credentials.gateway_url
            if not url:
                try:
                    gateway = await self._until_closed(self._resolve_gateway())
                except Exception as e:
                    if self._state is TunnelState.CLOSED:
                        raise
                    self._log.error(
                        f"Gateway resolution failed: {get_short_error_info(e)}"
                    )
                    self.close(
                        GatewayResolutionError(
                            e, source=self._name, note="Gateway resolution failed"
                        )
                    )
                    return await opened
                url = gateway.url

            self._gateway_url = url
            self._log = self._log.with_context(gateway=url)
            self._set_state(TunnelState.CONNECTING)
            self._log.info(f"Connecting to gateway {url}")
            try:
                channel = await self._until_closed(
                    self._channel_factory(url), discard=self._close_channel
                )
            except Exception as e:
                if self._state is TunnelState.CLOSED:
                    raise
                self._log.error(
                    f"Failed to connect to gateway {url}: {get_short_error_info(e)}"
                )
                self.close(
                    TunnelConnectError(
                        e, source=self._name, note=f"Failed to connect to {url}"
                    )
                )
                return await opened

            self._channel = channel
            self._outbound = asyncio.Queue()
            self._set_state(TunnelState.AWAITING_HELLO)
            self._sender_task = loop.create_task(self._sender(channel, self._outbound))
            self._receiver_task = loop.create_task(self._receiver(channel))

            await opened

        except asyncio.CancelledError:
            if not opened.done():
                opened.cancel()
            self._log.warning("open() cancelled, closing tunnel")
            self.close()
            raise

    async def _until_closed(
        self,
        awaitable: Awaitable[T],
        discard: Callable[[T], Awaitable[None]] | None = None,
    ) -> T:
        """Await ``awaitable`` unless the tunnel closes first.

        If the tunnel closes first the awaitable is cancelled and the close
        reason is raised. A result that arrives together with the close is
        handed to ``discard``.
        """
        opened = self._opened_future
        assert opened is not None
        task = asyncio.ensure_future(awaitable)
        try:
            await asyncio.wait({task, opened}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not task.done():
                task.cancel()
                task.add_done_callback(_consume_result)

        if self._state is TunnelState.CLOSED:
            if task.done() and not task.cancelled() and task.exception() is None:
                if discard is not None:
                    await discard(task.result())
            await opened
            # open() always leaves the future failed when closing early
            raise TunnelClosedError(
                "tunnel closed", source=self._name, note="Tunnel.open"
            )
        return task.result()

    def _arm_handshake_timeout(self, loop: asyncio.AbstractEventLoop) -> None:
        timeout = self._settings.handshake_timeout
        if timeout is not None:
            self._timeout_handle = loop.call_later(timeout, self._on_handshake_timeout)

    def _cancel_handshake_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _on_handshake_timeout(self) -> None:
        self._timeout_handle = None
        if self._state in (TunnelState.RELAYING, TunnelState.CLOSED):
            return
        timeout = self._settings.handshake_timeout or 0.0
        self._log.error(
            f"Handshake timed out after {timeout:g}s in state {self._state.name}"
        )
        self.close(HandshakeTimeoutError(timeout, source=self._name))

    # ---------------- channel I/O ---------------- #

    async def _sender(self, channel: Channel, queue: asyncio.Queue[Any]) -> None:
        """Send queued frames in order; closes the channel when done."""
        try:
            while True:
                item = await queue.get()
                if item is _CLOSE:
                    break
                try:
                    await channel.send(item)
                except ChannelClosed as e:
                    self._log.warning(f"Send failed, channel closed: {e}")
                    break
                if isinstance(item, bytes):
                    self._metrics.bytes_sent(len(item))
        finally:
            await self._close_channel(channel)

    async def _receiver(self, channel: Channel) -> None:
        while True:
            try:
                message = await channel.recv()
            except ChannelClosed as e:
                if self._state is not TunnelState.CLOSED:
                    self._log.info(f"Channel closed by remote: {e}")
                break
            except Exception as e:
                self._log.error(f"Channel receive failed: {get_short_error_info(e)}")
                self.close(
                    TunnelException(e, source=self._name, note="Channel receive failed")
                )
                return

            try:
                self._handle_frame(message)
            except Exception as e:
                self._log.error(f"Failed to handle frame:\n{get_full_error_info(e)}")
                self.close(
                    TunnelException(e, source=self._name, note="Frame handling failed")
                )

            if self._state is TunnelState.CLOSED:
                return

        self.close()

    async def _close_channel(self, channel: Channel) -> None:
        try:
            await channel.close()
        except Exception as e:
            self._log.warning(f"Error while closing channel: {get_short_error_info(e)}")
        else:
            self._log.debug("Channel released")

    def _enqueue(self, item: str | bytes) -> None:
        assert self._outbound is not None, "channel must be connected"
        self._outbound.put_nowait(item)

    def _send_control(self, message: ClientMessage) -> None:
        self._log.debug(f"Sending '{message.KIND}' message")
        self._enqueue(encode_control(message))

    # ---------------- inbound frames ---------------- #

    def _handle_frame(self, message: str | bytes) -> None:
        if isinstance(message, str):
            try:
                control = decode_control(message)
            except ValueError as e:
                self._log.warning(
                    f"Malformed control message ignored: {get_short_error_info(e)}"
                )
                return
            self._handle_control(control)
            return

        payload = bytes(message)
        if self._state is TunnelState.RELAYING:
            self._metrics.bytes_received(len(payload))
            self._data.on_next(payload)
        else:
            self._log.warning(
                f"Dropped {len(payload)} payload bytes received before the tunnel"
                f" opened (state {self._state.name})"
            )

    def _handle_control(self, message: ServerMessage) -> None:
        match message:
            case Hello(version=version):
                if not self._expect(TunnelState.AWAITING_HELLO, message):
                    return
                if version is not None and version != self._settings.protocol_version:
                    self._log.warning(
                        f"Gateway expects protocol version {version},"
                        f" replying with {self._settings.protocol_version}"
                    )
                self._send_control(
                    HelloReply(
                        version=self._settings.protocol_version,
                        auth_token=self._credentials.auth_token,
                    )
                )
                self._set_state(TunnelState.AWAITING_READY)

            case Ready():
                if not self._expect(TunnelState.AWAITING_READY, message):
                    return
                assert self._target is not None
                self._send_control(Connect(host=self._target.host, port=self._target.port))
                self._set_state(TunnelState.AWAITING_CONNECTED)

            case Connected():
                if not self._expect(TunnelState.AWAITING_CONNECTED, message):
                    return
                self._start_relaying()

            case GatewayError(details=details):
                self._log.error(f"Connection gateway error: {details}")
                self.close(ProtocolError(details, source=self._name))

            case UnknownMessage(kind=kind):
                self._log.warning(f"Unknown service message ignored: {kind!r}")

    def _expect(self, state: TunnelState, message: ServerMessage) -> bool:
        if self._state is state:
            return True
        self._log.warning(
            f"Unexpected '{type(message).KIND}' message ignored"
            f" in state {self._state.name}"
        )
        return False

    def _start_relaying(self) -> None:
        payload = self._pending.drain()
        if payload:
            self._enqueue(payload)
        self._set_state(TunnelState.RELAYING)
        self._cancel_handshake_timeout()

        self._log.info("Tunnel relaying", flushed_bytes=len(payload))
        self._metrics.tunnel_opened(self._gateway_url or "")

        # open() succeeds even if an opened subscriber closes the tunnel
        if self._opened_future is not None and not self._opened_future.done():
            self._opened_future.set_result(None)
        try:
            self._opened.on_next(None)
        except Exception as e:
            self._log.error(f"Opened subscriber failed:\n{get_full_error_info(e)}")
        if self._state is TunnelState.RELAYING:
            self._opened.on_completed()

    # ---------------- writing ---------------- #

    def write(self, chunk: bytes | bytearray | memoryview) -> None:
        """Send ``chunk`` to the target, buffering it until the tunnel opens.

        Never blocks. Writes after close are dropped. Exceeding the pending
        limit closes the tunnel with
        :class:`~rxtunnel.mechanism.BufferOverflowError`.
        """
        if not isinstance(chunk, (bytes, bytearray, memoryview)):
            raise TypeError(f"Tunnel.write expects bytes, got {type(chunk).__name__}")
        data = bytes(chunk)

        if self._state is TunnelState.CLOSED:
            self._log.debug(f"Dropped {len(data)} bytes written after close")
            return

        if self._state is TunnelState.RELAYING:
            self._enqueue(data)
            return

        try:
            self._pending.push(data)
        except OverflowError as e:
            self._log.error(f"Pending writes overflow: {e}")
            self.close(
                BufferOverflowError(
                    e, source=self._name, note="Pending write limit exceeded"
                )
            )

    # ---------------- closing ---------------- #

    def close(self, error: Exception | None = None) -> None:
        """Tear the tunnel down. Calling it again is a no-op.

        The channel is closed after queued frames are sent. ``error`` is
        emitted on :attr:`errors` first, then every stream completes and
        :attr:`closed` fires. A pending ``open()`` fails.
        """
        if self._state is TunnelState.CLOSED:
            return

        previous = self._state
        self._set_state(TunnelState.CLOSED)
        self._cancel_handshake_timeout()
        self._pending.drain()
        self._shutdown_channel()

        failure: TunnelException | None = None
        if error is not None:
            failure = (
                error
                if isinstance(error, TunnelException)
                else TunnelException(error, source=self._name, note="Tunnel closed")
            )
            self._error = failure
            self._metrics.tunnel_failed(type(failure).__name__)
            self._errors.on_next(failure)

        opened = self._opened_future
        if opened is not None and not opened.done():
            opened.set_exception(
                failure
                or TunnelClosedError(
                    f"closed in state {previous.name} before the tunnel opened",
                    source=self._name,
                    note="Tunnel.open",
                )
            )

        self._opened.on_completed()
        self._data.on_completed()
        self._errors.on_completed()

        if failure is not None:
            self._log.info(f"Tunnel closed with error: {failure}")
        else:
            self._log.info(f"Tunnel closed (was {previous.name})")
        self._closed.on_next(None)
        self._closed.on_completed()

    def _shutdown_channel(self) -> None:
        self._channel = None
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if self._receiver_task is not None and self._receiver_task is not current:
            self._receiver_task.cancel()
        if self._outbound is not None:
            self._outbound.put_nowait(_CLOSE)

    async def aclose(self, error: Exception | None = None) -> None:
        """Close the tunnel and wait until its channel has been released."""
        self.close(error)
        if self._sender_task is not None:
            await asyncio.gather(self._sender_task, return_exceptions=True)

    # ---------------- Observer surface ---------------- #

    def on_next(self, value: bytes) -> None:
        self.write(value)

    def on_error(self, error: Exception) -> None:
        self.close(error)

    def on_completed(self) -> None:
        self.close()
