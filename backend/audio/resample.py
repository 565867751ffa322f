"""Sample-rate conversion for decoded clips."""

from math import gcd

import numpy as np
from scipy import signal

from audio.frames import AudioClip


def resample_frames(samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
    """
    Resample float32 frames shaped (frames, channels).

    Uses polyphase filtering along the time axis. Output is clipped back
    into [-1, 1] since the filter can overshoot on transients.
    """
    if from_rate <= 0 or to_rate <= 0:
        raise ValueError("sample rates must be > 0")
    if from_rate == to_rate or samples.shape[0] == 0:
        return samples

    g = gcd(from_rate, to_rate)
    up, down = to_rate // g, from_rate // g

    resampled = signal.resample_poly(samples, up, down, axis=0)
    return np.clip(resampled, -1.0, 1.0).astype(np.float32)


def resample_clip(clip: AudioClip, to_rate: int) -> AudioClip:
    """Return clip at to_rate (the same object when no conversion is needed)."""
    if clip.sample_rate == to_rate:
        return clip

    return AudioClip(
        samples=resample_frames(clip.samples, clip.sample_rate, to_rate),
        sample_rate=to_rate,
        channels=clip.channels,
    )
