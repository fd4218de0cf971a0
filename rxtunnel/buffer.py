"""Write buffer for tunnels that are not relaying yet.

Chunks written before the gateway confirms the tunnel are held here in
order and drained as one contiguous payload when the tunnel opens.

Example:
    >>> pending = PendingWrites(max_bytes=8)
    >>> pending.push(b"GET ")
    >>> pending.push(b"/")
    >>> pending.drain()
    b'GET /'
    >>> pending.push(b"123456789")  # Raises OverflowError
"""

import threading


class PendingWrites:
    """Ordered, optionally bounded, byte buffer.

    Args:
        max_bytes: Largest total payload the buffer may hold, or ``None`` for
            no limit.

    Raises:
        ValueError: If ``max_bytes`` < 1.
    """

    def __init__(self, max_bytes: int | None = None):
        if max_bytes is not None and max_bytes < 1:
            raise ValueError(f"max_bytes must be >= 1, got {max_bytes}")
        self._max_bytes = max_bytes
        self._chunks: list[bytes] = []
        self._size = 0
        self._lock = threading.Lock()

    def push(self, chunk: bytes) -> None:
        """Append a chunk.

        Raises:
            OverflowError: The chunk would take the buffer past ``max_bytes``.
                The chunk is not stored.
        """
        with self._lock:
            if self._max_bytes is not None and self._size + len(chunk) > self._max_bytes:
                raise OverflowError(
                    f"pending writes exceeded limit of {self._max_bytes} bytes"
                )
            self._chunks.append(bytes(chunk))
            self._size += len(chunk)

    def drain(self) -> bytes:
        """Return every buffered byte in push order and empty the buffer."""
        with self._lock:
            payload = b"".join(self._chunks)
            self._chunks.clear()
            self._size = 0
            return payload

    def size(self) -> int:
        """Total number of buffered bytes."""
        with self._lock:
            return self._size

    def capacity(self) -> int | None:
        return self._max_bytes

    def __len__(self) -> int:
        with self._lock:
            return len(self._chunks)
