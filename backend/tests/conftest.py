"""Shared fixtures: an in-memory stand-in for the sounddevice module."""
import pytest
import numpy as np
from micstream.audio.capture import CaptureSource


class FakePortAudioError(Exception):
    pass


class FakeCallbackStop(Exception):
    pass


class FakeCallbackAbort(Exception):
    pass


class FakeInputStream:
    """Records the callback so tests can deliver blocks by hand."""

    def __init__(self, backend, device, samplerate, channels, dtype, callback, finished_callback):
        self.backend = backend
        self.device = device
        self.samplerate = samplerate
        self.channels = channels
        self.dtype = dtype
        self.callback = callback
        self.finished_callback = finished_callback
        self.active = False
        self.closed = False

    def start(self):
        if self.backend.fail_start:
            raise FakePortAudioError("Device unavailable [PaErrorCode -9985]")
        self.active = True

    def stop(self):
        if self.active:
            self.active = False
            self.finished_callback()

    def close(self):
        self.closed = True

    def feed(self, indata: np.ndarray, status=False):
        """Deliver one block; returns the exception class the callback raised, if any."""
        try:
            self.callback(indata, len(indata), None, status)
        except (FakeCallbackStop, FakeCallbackAbort) as e:
            self.active = False
            self.finished_callback()
            return type(e)
        return None

    def disconnect(self):
        """Simulate the device vanishing mid-stream."""
        self.active = False
        self.finished_callback()


class FakeBackend:
    """Implements the parts of the sounddevice API that capture uses."""
    PortAudioError = FakePortAudioError
    CallbackStop = FakeCallbackStop
    CallbackAbort = FakeCallbackAbort

    def __init__(self, devices=None, default_input=0, reject_stream=False, fail_start=False):
        if devices is None:
            devices = [
                {"name": "Fake Mic", "index": 0, "max_input_channels": 2, "max_output_channels": 0, "default_samplerate": 48000.0},
                {"name": "Fake Speakers", "index": 1, "max_input_channels": 0, "max_output_channels": 2, "default_samplerate": 44100.0},
                {"name": "USB Headset", "index": 2, "max_input_channels": 1, "max_output_channels": 2, "default_samplerate": 16000.0},
            ]
        self.devices = devices
        self.default_input = default_input
        self.reject_stream = reject_stream
        self.fail_start = fail_start
        self.streams = []

    def query_devices(self, device=None, kind=None):
        if device is None and kind is None:
            return list(self.devices)
        if device is None:
            if self.default_input is None:
                raise FakePortAudioError("Error querying device -1")
            return self.devices[self.default_input]
        if isinstance(device, int):
            return self.devices[device]
        for info in self.devices:
            if device.lower() in info["name"].lower():
                return info
        raise ValueError(f"No input device matching {device!r}")

    def InputStream(self, **kwargs):
        if self.reject_stream:
            raise FakePortAudioError("Invalid sample rate [PaErrorCode -9997]")
        stream = FakeInputStream(self, **kwargs)
        self.streams.append(stream)
        return stream


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def capture(fake_backend):
    source = CaptureSource(backend=fake_backend)
    yield source
    source.stop()
