"""REST endpoints for health and status."""
from fastapi import APIRouter, HTTPException, Request
from micstream.audio.capture import list_input_devices
from micstream.core.errors import DeviceUnavailableError
from micstream.core.logging import logger

router = APIRouter()

VERSION = "0.1.0"


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        Status, version and capture state
    """
    capture = request.app.state.capture
    failure = capture.failure if capture is not None else None
    return {
        "status": "ok" if failure is None else "degraded",
        "version": VERSION,
        "capture_running": bool(capture is not None and capture.running),
        "capture_error": str(failure) if failure is not None else None,
    }


@router.get("/stream/info")
async def stream_info(request: Request):
    """
    Describe the PCM carried by ``/stream``.

    Returns:
        Audio format, sink counters and the active stream ID
    """
    capture = request.app.state.capture
    sink = request.app.state.sink
    if capture is None or capture.format is None or sink is None:
        raise HTTPException(status_code=503, detail="Audio capture is not running")

    info = capture.format.to_dict()
    info["sink"] = sink.snapshot()
    info["active_stream"] = await request.app.state.stream_router.active_stream()
    return info


@router.get("/devices")
async def list_devices(request: Request):
    """List input devices known to the audio backend."""
    capture = request.app.state.capture
    try:
        backend = capture.backend if capture is not None else None
        return list_input_devices(backend)
    except DeviceUnavailableError as e:
        logger.error(f"Could not enumerate audio devices: {e}")
        raise HTTPException(status_code=503, detail=f"Audio backend unavailable: {e}")
