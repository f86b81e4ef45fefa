"""Real-time capture from the default input device into the sample sink."""
import importlib
import queue
from typing import Optional, Union
from micstream.audio.ingestion import samples_to_bytes
from micstream.audio.models import AudioFormat, SAMPLE_DTYPE
from micstream.audio.sink import SampleSink
from micstream.core.errors import (
    CaptureRuntimeError,
    DeviceUnavailableError,
    SinkClosedError,
    StreamConstructionError,
)
from micstream.core.logging import logger

DeviceSpec = Union[int, str, None]


def _load_backend():
    """Import sounddevice, which loads the PortAudio library."""
    try:
        return importlib.import_module("sounddevice")
    except OSError as e:
        raise DeviceUnavailableError(f"PortAudio library could not be loaded: {e}") from e


def parse_device(value: Optional[str]) -> DeviceSpec:
    """Turn a configured device string into an index, name substring, or None."""
    if value is None or not value.strip():
        return None
    value = value.strip()
    return int(value) if value.isdigit() else value


class CaptureSource:
    """
    Owns the input stream and its real-time callback.

    The callback only converts samples and appends them to the sink. Failures
    on the audio thread are put on an error channel and surfaced through
    ``poll_error()``; they never propagate into consumer code.

    Example usage::

        with CaptureSource() as capture:
            fmt = capture.start(sink)
            ...  # serve clients
    """

    def __init__(self, device: DeviceSpec = None, backend=None):
        """
        Initialize the capture source.

        Args:
            device: Device index or name substring, ``None`` for the system default
            backend: Module exposing the ``sounddevice`` API; loaded lazily when omitted
        """
        self._device = device
        self._backend = backend
        self._stream = None
        self._sink: Optional[SampleSink] = None
        self._format: Optional[AudioFormat] = None
        self._errors: "queue.SimpleQueue[CaptureRuntimeError]" = queue.SimpleQueue()
        self._stopping = False
        self._running = False

        self.failure: Optional[CaptureRuntimeError] = None
        self.overflow_count = 0  # callbacks that reported driver status flags

    @property
    def backend(self):
        if self._backend is None:
            self._backend = _load_backend()
        return self._backend

    @property
    def format(self) -> Optional[AudioFormat]:
        return self._format

    @property
    def running(self) -> bool:
        return self._running

    def read_format(self) -> AudioFormat:
        """
        Read the input device's default configuration without opening it.

        Returns:
            Format the device will deliver

        Raises:
            DeviceUnavailableError: No usable input device
        """
        backend = self.backend
        try:
            info = backend.query_devices(self._device, kind="input")
        except (ValueError, backend.PortAudioError) as e:
            raise DeviceUnavailableError(f"No input device available: {e}") from e

        channels = int(info.get("max_input_channels", 0))
        sample_rate = int(info.get("default_samplerate", 0))
        if channels <= 0 or sample_rate <= 0:
            raise DeviceUnavailableError(
                f"Device {info.get('name')!r} has no usable default input configuration "
                f"(channels={channels}, sample_rate={sample_rate})"
            )

        self._format = AudioFormat(
            sample_rate=sample_rate,
            channels=channels,
            device_name=info.get("name"),
        )
        return self._format

    def start(self, sink: SampleSink) -> AudioFormat:
        """
        Open the input stream and start pushing samples into ``sink``.

        Args:
            sink: Buffer that receives little-endian float32 bytes

        Returns:
            Format of the running stream

        Raises:
            DeviceUnavailableError: No usable input device
            StreamConstructionError: The backend rejected the configuration
        """
        if self._stream is not None:
            raise RuntimeError("Capture already started")

        fmt = self._format or self.read_format()
        backend = self.backend
        self._sink = sink
        self._stopping = False

        try:
            stream = backend.InputStream(
                device=self._device,
                samplerate=fmt.sample_rate,
                channels=fmt.channels,
                dtype=SAMPLE_DTYPE,
                callback=self._callback,
                finished_callback=self._on_finished,
            )
        except (ValueError, backend.PortAudioError) as e:
            raise StreamConstructionError(f"Audio backend rejected input stream: {e}") from e

        try:
            stream.start()
        except backend.PortAudioError as e:
            stream.close()
            raise StreamConstructionError(f"Could not start input stream: {e}") from e

        self._stream = stream
        self._running = True
        logger.info(
            f"Audio capture started on {fmt.device_name!r}: "
            f"{fmt.sample_rate} Hz, {fmt.channels} channel(s), {fmt.dtype}"
        )
        return fmt

    def _callback(self, indata, frames, time_info, status) -> None:
        """Real-time callback: convert and append, nothing else."""
        if status:
            self.overflow_count += 1
        try:
            self._sink.append(samples_to_bytes(indata))
        except SinkClosedError as e:
            self._report(CaptureRuntimeError(f"Sample sink closed during capture: {e}"))
            raise self.backend.CallbackStop from e
        except Exception as e:
            self._report(CaptureRuntimeError(f"Capture callback failed: {e!r}"))
            raise self.backend.CallbackAbort from e

    def _on_finished(self) -> None:
        """Called by the backend once the stream is inactive, for any reason."""
        self._running = False
        if not self._stopping and self.failure is None:
            self._report(CaptureRuntimeError("Input stream finished unexpectedly (device removed?)"))

    def _report(self, error: CaptureRuntimeError) -> None:
        if self.failure is None:
            self.failure = error
        self._errors.put_nowait(error)

    def poll_error(self) -> Optional[CaptureRuntimeError]:
        """Return the next reported runtime error, or None if there is none."""
        try:
            return self._errors.get_nowait()
        except queue.Empty:
            return None

    def stop(self) -> None:
        """Stop and close the input stream. Safe to call more than once."""
        stream, self._stream = self._stream, None
        if stream is None:
            return
        self._stopping = True
        try:
            stream.stop()
        finally:
            stream.close()
            self._running = False
            logger.info("Audio capture stopped")

    def __enter__(self) -> "CaptureSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def list_input_devices(backend=None) -> list[dict]:
    """
    List devices that can record.

    Args:
        backend: Module exposing the ``sounddevice`` API; loaded lazily when omitted

    Returns:
        One dict per input-capable device
    """
    backend = backend or _load_backend()
    try:
        default_index = backend.query_devices(kind="input").get("index")
    except (ValueError, backend.PortAudioError):
        default_index = None

    devices = []
    for index, info in enumerate(backend.query_devices()):
        if info.get("max_input_channels", 0) <= 0:
            continue
        device_index = info.get("index", index)
        devices.append({
            "index": device_index,
            "name": info.get("name"),
            "channels": info.get("max_input_channels"),
            "default_sample_rate": info.get("default_samplerate"),
            "default": device_index == default_index,
        })
    return devices
