"""End-to-end tests against a real uvicorn server on the fake audio backend."""
import base64
import os
import signal
import socket
import subprocess
import sys
import time
from pathlib import Path
import numpy as np
import pytest
import requests
from micstream.audio.ingestion import bytes_to_samples
from micstream.audio.streaming import parse_events

TESTS_DIR = Path(__file__).resolve().parent
BACKEND_DIR = TESTS_DIR.parent

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX signals")


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def server(tmp_path):
    """Start fake_server.py and yield (process, base_url, log_path)."""
    port = _free_port()
    log_path = tmp_path / "server.log"
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join([str(BACKEND_DIR), str(TESTS_DIR), env.get("PYTHONPATH", "")])
    env["PYTHONUNBUFFERED"] = "1"
    # Long enough that only ending the streams on the signal lets the server exit quickly
    env["GRACEFUL_SHUTDOWN_SECONDS"] = "60"

    with open(log_path, "w") as log_file:
        process = subprocess.Popen(
            [sys.executable, str(TESTS_DIR / "fake_server.py"), str(port)],
            stdout=log_file,
            stderr=subprocess.STDOUT,
            env=env,
        )
    base_url = f"http://127.0.0.1:{port}"

    deadline = time.monotonic() + 20
    while True:
        try:
            if requests.get(f"{base_url}/health", timeout=1).status_code == 200:
                break
        except requests.ConnectionError:
            pass
        if process.poll() is not None or time.monotonic() > deadline:
            process.kill()
            pytest.fail(f"server did not start:\n{log_path.read_text()}")
        time.sleep(0.1)

    yield process, base_url, log_path

    if process.poll() is None:
        process.kill()
        process.wait()


def _first_audio_samples(response) -> np.ndarray:
    """Read events until the first audio event and decode its samples."""
    lines = response.iter_lines(decode_unicode=True)
    for event_name, data in parse_events(lines):
        if event_name == "audio":
            return bytes_to_samples(base64.b64decode(data), channels=2)
    raise AssertionError("stream ended before any audio event")


def test_stream_serves_sse_audio(server):
    """Test that /stream answers 200 with SSE headers and decodable PCM."""
    _, base_url, _ = server

    with requests.get(f"{base_url}/stream", stream=True, timeout=(5, 5)) as response:
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"
        samples = _first_audio_samples(response)

    assert samples.size > 0
    assert np.all(samples >= 1.0)


def test_reconnect_receives_fresh_audio(server):
    """Test that after a client disconnects, a new client gets newer samples."""
    _, base_url, _ = server

    with requests.get(f"{base_url}/stream", stream=True, timeout=(5, 5)) as response:
        assert response.status_code == 200
        first_samples = _first_audio_samples(response)

    # The slot frees once the server notices the disconnect on its next write
    deadline = time.monotonic() + 10
    while True:
        response = requests.get(f"{base_url}/stream", stream=True, timeout=(5, 5))
        if response.status_code != 409 or time.monotonic() > deadline:
            break
        response.close()
        time.sleep(0.05)

    with response:
        assert response.status_code == 200
        second_samples = _first_audio_samples(response)

    assert second_samples.min() > first_samples.max()


def test_sigint_with_open_stream_shuts_down_cleanly(server):
    """Test that SIGINT ends open streams, runs shutdown, and closes the device stream."""
    process, base_url, log_path = server

    response = requests.get(f"{base_url}/stream", stream=True, timeout=(5, 5))
    try:
        assert response.status_code == 200
        _first_audio_samples(response)

        process.send_signal(signal.SIGINT)
        try:
            process.wait(timeout=15)
        except subprocess.TimeoutExpired:
            pytest.fail(f"server still running after SIGINT:\n{log_path.read_text()}")
    finally:
        response.close()

    log = log_path.read_text()
    assert "Shutting down Microphone Stream Backend" in log
    assert "Audio capture stopped" in log
    assert "fake stream closed: True" in log
