"""Service that surfaces capture-thread problems in the application log."""
import asyncio
from typing import Optional
from micstream.audio.sink import SampleSink
from micstream.core.errors import CaptureRuntimeError
from micstream.core.logging import logger


class CaptureMonitor:
    """
    Watches the capture error channel and sink counters from the event loop.

    The real-time callback cannot log, so it records problems and this
    monitor reports them.
    """

    def __init__(self, capture, sink: SampleSink, interval: float = 0.2):
        """
        Initialize the monitor.

        Args:
            capture: Capture source to watch
            sink: Sample sink whose drop counter is reported
            interval: Seconds between checks
        """
        self._capture = capture
        self._sink = sink
        self._interval = interval
        self._last_dropped = 0
        self._last_overflow_count = 0
        self.errors: list[CaptureRuntimeError] = []

    def check(self) -> Optional[CaptureRuntimeError]:
        """
        Report everything recorded since the last check.

        Returns:
            The last runtime error found in this check, if any
        """
        latest = None
        error = self._capture.poll_error()
        while error is not None:
            logger.error(f"Audio capture halted: {error}")
            self.errors.append(error)
            latest = error
            error = self._capture.poll_error()

        dropped = self._sink.dropped_bytes
        if dropped > self._last_dropped:
            logger.warning(
                f"Sample sink full, dropped {dropped - self._last_dropped} oldest bytes "
                f"({dropped} total); is a consumer stalled?"
            )
            self._last_dropped = dropped

        overflow_count = self._capture.overflow_count
        if overflow_count > self._last_overflow_count:
            logger.warning(f"Audio driver reported {overflow_count - self._last_overflow_count} status flag(s) (input overflow)")
            self._last_overflow_count = overflow_count

        return latest

    async def run(self) -> None:
        """Check on a fixed interval until cancelled."""
        while True:
            self.check()
            await asyncio.sleep(self._interval)
