"""Shared sample buffer between the capture callback and the stream publisher."""
import threading
from typing import Optional
from micstream.core.errors import SinkClosedError


class SampleSink:
    """
    Thread-safe byte accumulator for raw little-endian PCM.

    One writer (the capture callback) appends, one reader (the publisher)
    drains. The lock is held only for the copy, so the real-time writer never
    waits longer than one append or drain.

    Nothing in this class logs: ``append`` runs on the audio thread.
    """

    def __init__(self, max_bytes: Optional[int] = None, align: int = 1):
        """
        Initialize the sink.

        Args:
            max_bytes: Cap on buffered bytes. When exceeded, the oldest bytes
                       are dropped. ``None`` leaves the buffer unbounded.
            align: Drops happen in multiples of this many bytes, so that a
                   drain never starts in the middle of a sample frame.
        """
        if align <= 0:
            raise ValueError(f"align must be positive, got {align}")
        if max_bytes is not None and max_bytes < align:
            raise ValueError(f"max_bytes ({max_bytes}) must hold at least one frame ({align} bytes)")

        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._max_bytes = max_bytes
        self._align = align
        self._closed = False

        self.appended_bytes = 0
        self.drained_bytes = 0
        self.dropped_bytes = 0

    def append(self, data: bytes) -> None:
        """Append ``data`` to the end of the buffer."""
        with self._lock:
            if self._closed:
                raise SinkClosedError("append on closed sample sink")
            self._buffer += data
            self.appended_bytes += len(data)

            if self._max_bytes is not None and len(self._buffer) > self._max_bytes:
                excess = len(self._buffer) - self._max_bytes
                # Round up so the remaining bytes stay frame aligned
                excess = min(-(-excess // self._align) * self._align, len(self._buffer))
                del self._buffer[:excess]
                self.dropped_bytes += excess

    def drain_all(self) -> bytes:
        """
        Atomically remove and return everything buffered.

        Returns:
            The buffered bytes, or ``b""`` if the sink is empty
        """
        with self._lock:
            if self._closed:
                raise SinkClosedError("drain on closed sample sink")
            if not self._buffer:
                return b""
            data = bytes(self._buffer)
            self._buffer.clear()
            self.drained_bytes += len(data)
            return data

    def close(self) -> None:
        """Poison the sink and discard anything still buffered."""
        with self._lock:
            self._closed = True
            self._buffer.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def max_bytes(self) -> Optional[int]:
        return self._max_bytes

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def snapshot(self) -> dict:
        """Counters for status reporting."""
        with self._lock:
            return {
                "buffered_bytes": len(self._buffer),
                "max_bytes": self._max_bytes,
                "appended_bytes": self.appended_bytes,
                "drained_bytes": self.drained_bytes,
                "dropped_bytes": self.dropped_bytes,
                "closed": self._closed,
            }
