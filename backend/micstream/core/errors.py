"""Error types raised by the capture and streaming layers."""


class MicstreamError(Exception):
    """Base class for all backend errors."""


class DeviceUnavailableError(MicstreamError):
    """No input device was found or its default configuration could not be read."""


class StreamConstructionError(MicstreamError):
    """The audio backend rejected the requested stream configuration."""


class CaptureRuntimeError(MicstreamError):
    """Error reported by the audio backend while capture was running."""


class SinkClosedError(MicstreamError):
    """The sample sink was used after it was closed at shutdown."""
