"""Control messages exchanged with the connection gateway.

Control messages travel as JSON objects in text frames. The ``"_"`` key is
the discriminator. Incoming messages decode to one of the server variants
(:class:`Hello`, :class:`Ready`, :class:`Connected`, :class:`GatewayError`,
or :class:`UnknownMessage` for anything else); outgoing messages are built
from the client variants (:class:`HelloReply`, :class:`Connect`).

Example:
    >>> decode_control('{"_": "error", "details": "boom"}')
    GatewayError(details='boom')
    >>> encode_control(Connect(host="db.internal", port=5432))
    '{"_": "connect", "host": "db.internal", "port": 5432}'
"""

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar

KIND_KEY = "_"


# ---------------- server -> client ---------------- #


@dataclass(frozen=True)
class Hello:
    """Server greeting; may announce the protocol version it expects."""

    KIND: ClassVar[str] = "hello"
    version: int | None = None


@dataclass(frozen=True)
class Ready:
    """Server is ready to receive the target."""

    KIND: ClassVar[str] = "ready"


@dataclass(frozen=True)
class Connected:
    """Server has connected to the target; raw relay starts."""

    KIND: ClassVar[str] = "connected"


@dataclass(frozen=True)
class GatewayError:
    """Server-side failure. Terminates the tunnel."""

    KIND: ClassVar[str] = "error"
    details: str = ""


@dataclass(frozen=True)
class UnknownMessage:
    """Any control message whose kind is not part of the protocol."""

    kind: str
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


ServerMessage = Hello | Ready | Connected | GatewayError | UnknownMessage


# ---------------- client -> server ---------------- #


@dataclass(frozen=True)
class HelloReply:
    KIND: ClassVar[str] = "hello"
    version: int
    auth_token: str

    def to_dict(self) -> dict[str, Any]:
        return {KIND_KEY: self.KIND, "version": self.version, "auth_token": self.auth_token}


@dataclass(frozen=True)
class Connect:
    KIND: ClassVar[str] = "connect"
    host: str
    port: int

    def to_dict(self) -> dict[str, Any]:
        return {KIND_KEY: self.KIND, "host": self.host, "port": self.port}


ClientMessage = HelloReply | Connect


def encode_control(message: ClientMessage) -> str:
    """Serialize a client message for a text frame."""
    return json.dumps(message.to_dict())


def decode_control(text: str | bytes) -> ServerMessage:
    """Parse a text frame into a server message.

    Raises:
        ValueError: The frame is not JSON, not an object, or has no
            string discriminator.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"control message must be a JSON object, got {type(data).__name__}")

    kind = data.get(KIND_KEY)
    if not isinstance(kind, str):
        raise ValueError(f"control message has no '{KIND_KEY}' discriminator: {data!r}")

    match kind:
        case Hello.KIND:
            version = data.get("version")
            return Hello(version=version if isinstance(version, int) else None)
        case Ready.KIND:
            return Ready()
        case Connected.KIND:
            return Connected()
        case GatewayError.KIND:
            details = data.get("details", "")
            return GatewayError(
                details=details if isinstance(details, str) else json.dumps(details)
            )
        case _:
            return UnknownMessage(kind=kind, raw=data)
