"""Server-Sent Events endpoint for the live microphone feed."""
import uuid
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from micstream.core.config import settings
from micstream.core.logging import logger
from micstream.services.publisher import StreamPublisher
from micstream.services.stream_router import StreamRouter

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


async def _finish_stream(publisher: StreamPublisher, stream_router: StreamRouter) -> None:
    """Runs after the response ends, including when the body never started."""
    publisher.close()
    await stream_router.release(publisher.stream_id)


@router.get("/stream")
async def stream_audio(request: Request):
    """
    Stream captured PCM as SSE ``audio`` events.

    Each event carries base64 of interleaved little-endian float32 samples at
    the device's native rate and channel count (see ``/stream/info``).
    """
    state = request.app.state
    sink = state.sink
    if sink is None or sink.closed or state.shutdown.is_set():
        raise HTTPException(status_code=503, detail="Audio capture is not running")

    stream_id = f"sse-{uuid.uuid4().hex[:8]}"
    if not await state.stream_router.acquire(stream_id):
        raise HTTPException(status_code=409, detail="Another client is already consuming the stream")

    keepalive = settings.keepalive_seconds if settings.keepalive_seconds > 0 else None
    publisher = StreamPublisher(
        sink,
        stream_id,
        poll_interval=settings.poll_interval_ms / 1000.0,
        keepalive_interval=keepalive,
        capture=state.capture,
        shutdown=state.shutdown,
    )
    logger.info(f"New stream connection: {stream_id}")

    return StreamingResponse(
        publisher.events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        background=BackgroundTask(_finish_stream, publisher, state.stream_router),
    )
