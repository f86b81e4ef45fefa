"""Audio data models and structures."""
from dataclasses import dataclass
from typing import Optional

SAMPLE_DTYPE = "float32"
SAMPLE_WIDTH = 4  # bytes per float32 sample


@dataclass(frozen=True)
class AudioFormat:
    """Native format of the capture device, as reported by its default configuration."""
    sample_rate: int
    channels: int
    device_name: Optional[str] = None
    dtype: str = SAMPLE_DTYPE

    def __post_init__(self):
        """Validate format fields."""
        if self.sample_rate <= 0:
            raise ValueError(f"Expected positive sample rate, got {self.sample_rate}")
        if self.channels <= 0:
            raise ValueError(f"Expected at least one channel, got {self.channels}")

    @property
    def bytes_per_frame(self) -> int:
        """Bytes for one sample on every channel."""
        return SAMPLE_WIDTH * self.channels

    @property
    def bytes_per_second(self) -> int:
        return self.bytes_per_frame * self.sample_rate

    def to_dict(self) -> dict:
        return {
            "sample_rate": self.sample_rate,
            "channels": self.channels,
            "dtype": self.dtype,
            "byte_order": "little",
            "device": self.device_name,
        }


@dataclass
class StreamEvent:
    """One drained chunk of PCM bytes, ready to be framed for a client."""
    seq: int
    data: bytes

    def __post_init__(self):
        if not self.data:
            raise ValueError("StreamEvent requires a non-empty payload")
