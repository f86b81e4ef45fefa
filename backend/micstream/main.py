"""FastAPI application entrypoint."""
import asyncio
import threading
from typing import Callable, Optional
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from micstream.api import rest_status, stream
from micstream.api.rest_status import VERSION
from micstream.audio.capture import CaptureSource, parse_device
from micstream.audio.models import AudioFormat
from micstream.audio.sink import SampleSink
from micstream.core.config import settings
from micstream.core.errors import MicstreamError
from micstream.core.logging import logger, setup_logging
from micstream.services.capture_monitor import CaptureMonitor
from micstream.services.stream_router import StreamRouter

# Setup logging
setup_logging()


def build_sink(fmt: AudioFormat, max_buffer_seconds: float) -> SampleSink:
    """Create the shared sink, capped to ``max_buffer_seconds`` of audio (0 = uncapped)."""
    if max_buffer_seconds <= 0:
        return SampleSink(align=fmt.bytes_per_frame)
    frames = max(1, int(fmt.sample_rate * max_buffer_seconds))
    return SampleSink(max_bytes=frames * fmt.bytes_per_frame, align=fmt.bytes_per_frame)


def create_app(capture: Optional[CaptureSource] = None) -> FastAPI:
    """
    Create the FastAPI app.

    Args:
        capture: Capture source to use; built from settings at startup when omitted
    """
    app = FastAPI(
        title="Microphone Stream Backend",
        description="Live microphone capture republished as Server-Sent Events",
        version=VERSION
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,  # Must be False when using "*" origins
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(rest_status.router)
    app.include_router(stream.router)

    app.state.capture = capture
    app.state.sink = None
    app.state.monitor_task = None
    app.state.stream_router = StreamRouter()
    # Set on SIGINT/SIGTERM so open streams end before uvicorn waits on their connections
    app.state.shutdown = threading.Event()

    @app.on_event("startup")
    async def startup_event():
        """Open the input device; any failure here stops the server from starting."""
        logger.info(f"Starting Microphone Stream Backend on {settings.host}:{settings.port}")

        if app.state.capture is None:
            app.state.capture = CaptureSource(device=parse_device(settings.input_device))
        capture = app.state.capture

        try:
            fmt = capture.read_format()
            sink = build_sink(fmt, settings.max_buffer_seconds)
            capture.start(sink)
        except MicstreamError as e:
            logger.error(f"Audio capture failed to start: {e}")
            raise

        app.state.sink = sink
        if sink.max_bytes is None:
            logger.warning("Sample sink is uncapped (MAX_BUFFER_SECONDS=0); a stalled client grows memory without bound")
        else:
            logger.info(f"Sample sink capped at {sink.max_bytes} bytes ({settings.max_buffer_seconds} s), dropping oldest on overflow")

        monitor = CaptureMonitor(capture, sink, interval=settings.error_poll_interval_ms / 1000.0)
        app.state.monitor_task = asyncio.create_task(monitor.run())

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the device stream before poisoning the sink."""
        logger.info("Shutting down Microphone Stream Backend")
        app.state.shutdown.set()

        task = app.state.monitor_task
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            app.state.monitor_task = None

        if app.state.capture is not None:
            app.state.capture.stop()
        if app.state.sink is not None:
            app.state.sink.close()

    return app


class StreamServer(uvicorn.Server):
    """Uvicorn server that tells open streams to finish as soon as an exit signal arrives."""

    def __init__(self, config: uvicorn.Config, on_exit: Callable[[], None]):
        super().__init__(config)
        self._on_exit = on_exit

    def handle_exit(self, sig, frame) -> None:
        self._on_exit()
        super().handle_exit(sig, frame)


def serve(app: FastAPI, host: str, port: int) -> None:
    """Run ``app`` until SIGINT/SIGTERM, then shut down gracefully."""
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        timeout_graceful_shutdown=settings.graceful_shutdown_seconds,
    )
    server = StreamServer(config, on_exit=app.state.shutdown.set)
    try:
        server.run()
    except KeyboardInterrupt:
        # uvicorn re-raises the captured SIGINT once shutdown has completed
        pass


app = create_app()


def run() -> None:
    """Console entry point."""
    serve(app, settings.host, settings.port)


if __name__ == "__main__":
    run()
