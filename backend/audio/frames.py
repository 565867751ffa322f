"""
Audio data primitives.

Pure data containers only.
No device access, no scheduling, no timing logic.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from constants import CAPTURE_MIME_TYPE, samples_to_seconds


@dataclass(frozen=True, eq=False)
class AudioClip:
    """
    Decoded, in-memory audio ready for playback.

    samples:
        float32 array shaped (frames, channels), values in [-1.0, 1.0].
        Treated as read-only; a new clip is built for every load.

    sample_rate:
        Frames per second of `samples`.

    channels:
        Channel count. Always equals samples.shape[1].
    """
    samples: np.ndarray
    sample_rate: int
    channels: int = 1

    def __post_init__(self) -> None:
        if self.samples.ndim != 2:
            raise ValueError("samples must be shaped (frames, channels)")
        if self.samples.shape[1] != self.channels:
            raise ValueError(
                f"samples has {self.samples.shape[1]} channels, expected {self.channels}"
            )
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")

    @property
    def frame_count(self) -> int:
        """Number of sample frames."""
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Duration in seconds (frame_count / sample_rate)."""
        return samples_to_seconds(self.frame_count, self.sample_rate)


@dataclass(frozen=True)
class AudioChunk:
    """
    One outbound microphone frame, ready for the live channel.

    mime_type:
        Encoding tag, e.g. "audio/pcm;rate=16000".

    data:
        Base64 PCM16 little-endian payload.
    """
    data: str
    mime_type: str = CAPTURE_MIME_TYPE

    def to_wire(self) -> dict[str, str]:
        """Realtime-input media payload as sent on the live channel."""
        return {"mimeType": self.mime_type, "data": self.data}
