"""Per-connection loop that drains the sample sink into SSE frames."""
import asyncio
import threading
import time
from enum import Enum
from typing import AsyncIterator, Callable, Optional
from micstream.audio.models import StreamEvent
from micstream.audio.sink import SampleSink
from micstream.audio.streaming import KEEPALIVE_FRAME, format_audio_event, format_error_event
from micstream.core.errors import SinkClosedError
from micstream.core.logging import logger


class PublisherState(str, Enum):
    """Lifecycle of a publisher."""
    IDLE = "idle"
    POLLING = "polling"
    EMITTING = "emitting"
    CLOSED = "closed"


class StreamPublisher:
    """
    Drains a SampleSink on a fixed cadence and yields one SSE frame per
    non-empty drain.

    One publisher serves one connection. Closing it (client disconnect,
    ``aclose()`` on the generator, ``close()``, or server shutdown) never
    touches the capture source; bytes still buffered at that point are
    discarded.
    """

    def __init__(
        self,
        sink: SampleSink,
        stream_id: str,
        poll_interval: float = 0.01,
        keepalive_interval: Optional[float] = 15.0,
        capture=None,
        shutdown: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the publisher.

        Args:
            sink: Shared buffer filled by the capture callback
            stream_id: Identifier used in logs
            poll_interval: Seconds to sleep between drains
            keepalive_interval: Idle seconds before a keep-alive comment, None disables
            capture: Capture source whose ``failure`` is reported once as an error event
            shutdown: Set when the server is exiting; ends the stream on the next poll
            clock: Monotonic time source
        """
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")

        self.stream_id = stream_id
        self.state = PublisherState.IDLE
        self.events_sent = 0
        self.bytes_sent = 0

        self._sink = sink
        self._poll_interval = poll_interval
        self._keepalive_interval = keepalive_interval
        self._capture = capture
        self._shutdown = shutdown
        self._clock = clock
        self._error_reported = False

    async def events(self) -> AsyncIterator[bytes]:
        """
        Yield encoded SSE frames until the publisher is closed.

        Yields:
            Audio event frames, keep-alive comments, and at most one error event
        """
        if self.state is not PublisherState.IDLE:
            raise RuntimeError(f"Publisher {self.stream_id} already started")

        self.state = PublisherState.POLLING
        last_emit = self._clock()

        try:
            while self.state is not PublisherState.CLOSED:
                if self._shutdown is not None and self._shutdown.is_set():
                    logger.info(f"Server shutting down, ending stream {self.stream_id}")
                    break

                failure = self._capture.failure if self._capture is not None else None
                if failure is not None and not self._error_reported:
                    self._error_reported = True
                    last_emit = self._clock()
                    yield format_error_event(failure)

                try:
                    data = self._sink.drain_all()
                except SinkClosedError:
                    logger.info(f"Sample sink closed, ending stream {self.stream_id}")
                    break

                if data:
                    self.state = PublisherState.EMITTING
                    self.events_sent += 1
                    self.bytes_sent += len(data)
                    frame = format_audio_event(StreamEvent(seq=self.events_sent, data=data))
                    last_emit = self._clock()
                    yield frame
                    if self.state is PublisherState.EMITTING:
                        self.state = PublisherState.POLLING
                elif (
                    self._keepalive_interval is not None
                    and self._clock() - last_emit >= self._keepalive_interval
                ):
                    last_emit = self._clock()
                    yield KEEPALIVE_FRAME

                await asyncio.sleep(self._poll_interval)
        finally:
            self.close()

    def close(self) -> None:
        """Move to CLOSED and discard whatever is still buffered."""
        if self.state is PublisherState.CLOSED:
            return
        self.state = PublisherState.CLOSED

        discarded = 0
        if not self._sink.closed:
            try:
                discarded = len(self._sink.drain_all())
            except SinkClosedError:
                # Closed concurrently at shutdown; nothing left to discard
                pass

        logger.info(
            f"Stream {self.stream_id} closed: {self.events_sent} events, "
            f"{self.bytes_sent} bytes sent, {discarded} bytes discarded"
        )
