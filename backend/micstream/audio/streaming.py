"""Helper functions for framing drained audio as Server-Sent Events."""
import base64
import json
from micstream.audio.models import StreamEvent

KEEPALIVE_FRAME = b": keep-alive\n\n"


def format_audio_event(event: StreamEvent) -> bytes:
    """
    Frame a drained chunk as one SSE ``audio`` event.

    SSE data lines are text, so the PCM payload is base64 encoded.

    Args:
        event: Drained chunk with its sequence number

    Returns:
        Encoded event frame
    """
    payload = base64.b64encode(event.data).decode("ascii")
    return f"id: {event.seq}\nevent: audio\ndata: {payload}\n\n".encode("utf-8")


def format_error_event(error: Exception) -> bytes:
    """Frame a capture failure as one SSE ``error`` event."""
    body = json.dumps({"error": type(error).__name__, "message": str(error)})
    return f"event: error\ndata: {body}\n\n".encode("utf-8")


def parse_events(lines):
    """
    Parse SSE lines into ``(event, data)`` pairs.

    Comment lines (keep-alives) are skipped. Used by clients and tests.

    Args:
        lines: Iterable of decoded lines without trailing newlines

    Yields:
        Tuples of event name and joined data field
    """
    event_name = "message"
    data_lines = []
    for line in lines:
        if not line:
            if data_lines:
                yield event_name, "\n".join(data_lines)
            event_name = "message"
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value
        elif field == "data":
            data_lines.append(value)
