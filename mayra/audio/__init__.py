"""
PCM helpers shared by capture and playback.

Microphone frames arrive as float32 samples in [-1, 1]; the wire format in
both directions is mono 16-bit little-endian PCM.
"""

import base64
import binascii

import numpy as np

_INT16_SCALE = 32768.0


def rms(samples) -> float:
    """Root-mean-square loudness of float samples, clamped to [0, 1]."""
    data = np.asarray(samples, dtype=np.float32)
    if data.size == 0:
        return 0.0
    value = float(np.sqrt(np.mean(np.square(data, dtype=np.float64))))
    return min(max(value, 0.0), 1.0)


def float_to_pcm16le(samples) -> bytes:
    """Encode float samples to 16-bit little-endian PCM, clipping out-of-range values."""
    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    scaled = np.clip(data * _INT16_SCALE, -32768, 32767).astype("<i2")
    return scaled.tobytes()


def pcm16le_to_float(data: bytes) -> np.ndarray:
    """Decode 16-bit little-endian PCM to float32 samples in [-1, 1)."""
    if len(data) % 2:
        # Drop a dangling half sample
        data = data[:-1]
    return np.frombuffer(data, dtype="<i2").astype(np.float32) / _INT16_SCALE


def decode_base64_pcm16(payload: str) -> np.ndarray:
    """Decode a base64 PCM16 payload from the live service.

    Raises:
        ValueError: If the payload is not valid base64.
    """
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 audio payload: {e}") from e
    return pcm16le_to_float(raw)


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
