"""Admission of stream consumers onto the shared sample sink."""
import asyncio
from typing import Optional
from micstream.core.logging import logger


class StreamRouter:
    """
    Admits at most one active consumer of the sample sink.

    Draining is destructive, so two publishers on the same sink would each
    receive an interleaved half of the signal.
    """

    def __init__(self):
        """Initialize the stream router."""
        self._active_stream: Optional[str] = None
        self._lock = asyncio.Lock()

    async def acquire(self, stream_id: str) -> bool:
        """
        Try to register ``stream_id`` as the active consumer.

        Args:
            stream_id: Stream identifier

        Returns:
            True if admitted, False if another stream is active
        """
        async with self._lock:
            if self._active_stream is not None:
                logger.warning(f"Rejected stream {stream_id}: {self._active_stream} is active")
                return False
            self._active_stream = stream_id
            logger.info(f"Registered stream: {stream_id}")
            return True

    async def release(self, stream_id: str) -> None:
        """
        Unregister a stream if it is the active one.

        Args:
            stream_id: Stream identifier
        """
        async with self._lock:
            if self._active_stream == stream_id:
                self._active_stream = None
                logger.info(f"Unregistered stream: {stream_id}")

    async def active_stream(self) -> Optional[str]:
        """Get the active stream ID, if any."""
        async with self._lock:
            return self._active_stream


