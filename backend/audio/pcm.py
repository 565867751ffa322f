"""
PCM16 codec.

Pure functions converting between:
- base64 text and raw bytes
- PCM16 little-endian bytes and normalized float32 frames

No state. Safe to call from the audio callback thread and the control
thread at the same time.
"""

from __future__ import annotations

import base64
import binascii

import numpy as np

from audio.errors import DecodeError, MalformedBufferError
from audio.frames import AudioClip
from constants import (
    PCM_CHANNELS,
    PCM_DECODE_SCALE,
    PCM_ENCODE_SCALE_NEGATIVE,
    PCM_ENCODE_SCALE_POSITIVE,
    PCM_SAMPLE_WIDTH_BYTES,
)


def encode_base64(data: bytes) -> str:
    """Standard-alphabet base64 without line wrapping."""
    return base64.b64encode(data).decode("ascii")


def decode_base64(text: str) -> bytes:
    """
    Decode standard-alphabet base64.

    Raises:
        DecodeError on characters outside the alphabet or wrong padding.
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64 payload: {e}") from e


def pcm16_to_float(data: bytes, channels: int = PCM_CHANNELS) -> np.ndarray:
    """
    Convert PCM16 little-endian bytes to float32 frames in [-1.0, 1.0).

    Returns:
        Array shaped (frames, channels). Interleaved input is
        de-multiplexed by reshaping; each sample maps as s / 32768.0.

    Raises:
        MalformedBufferError if len(data) is not a multiple of 2 * channels.
    """
    if channels <= 0:
        raise ValueError("channels must be > 0")

    frame_bytes = PCM_SAMPLE_WIDTH_BYTES * channels
    if len(data) % frame_bytes != 0:
        raise MalformedBufferError(
            f"PCM length {len(data)} is not a multiple of {frame_bytes}"
        )

    audio_i16 = np.frombuffer(data, dtype="<i2")
    audio_f32 = audio_i16.astype(np.float32) / np.float32(PCM_DECODE_SCALE)
    return audio_f32.reshape(-1, channels)


def float_to_pcm16(frames: np.ndarray) -> bytes:
    """
    Convert float frames to PCM16 little-endian bytes.

    Accepts a 1D mono array or a (frames, channels) array (interleaved on
    output). Samples are clamped to [-1, 1]; positive values scale by 32767
    and negative values by 32768, truncating toward zero.
    """
    x = np.clip(np.asarray(frames, dtype=np.float64).reshape(-1), -1.0, 1.0)
    scaled = np.where(
        x < 0,
        x * PCM_ENCODE_SCALE_NEGATIVE,
        x * PCM_ENCODE_SCALE_POSITIVE,
    )
    return np.trunc(scaled).astype("<i2").tobytes()


def decode_clip(
    base64_audio: str,
    *,
    sample_rate: int,
    channels: int = PCM_CHANNELS,
) -> AudioClip:
    """
    Decode a base64 PCM16 payload into an AudioClip.

    Raises:
        DecodeError, MalformedBufferError
    """
    samples = pcm16_to_float(decode_base64(base64_audio), channels)
    return AudioClip(samples=samples, sample_rate=sample_rate, channels=channels)
