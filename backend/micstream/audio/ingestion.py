"""Helper functions for converting captured samples into sink bytes."""
import numpy as np

# Little-endian float32, independent of host byte order
PCM_DTYPE = np.dtype("<f4")


def samples_to_bytes(indata: np.ndarray) -> bytes:
    """
    Convert a block of captured samples to raw PCM bytes.

    Args:
        indata: Samples shaped (frames, channels) as delivered by the driver

    Returns:
        Interleaved little-endian float32 bytes
    """
    return np.ascontiguousarray(indata, dtype=PCM_DTYPE).tobytes()


def bytes_to_samples(data: bytes, channels: int) -> np.ndarray:
    """
    Convert raw PCM bytes back into a (frames, channels) float32 array.

    Args:
        data: Interleaved little-endian float32 bytes
        channels: Channel count of the stream

    Returns:
        Sample array; trailing bytes that do not form a whole frame are ignored
    """
    frame_bytes = PCM_DTYPE.itemsize * channels
    usable = len(data) - len(data) % frame_bytes
    samples = np.frombuffer(data[:usable], dtype=PCM_DTYPE)
    return samples.reshape(-1, channels)
