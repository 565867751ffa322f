"""
Amplitude-based "is speaking" heuristic.

Operates on fixed-size float32 capture frames and reports whether the mean
absolute amplitude is above a threshold. This is a visualization signal,
not voice activity detection: it never gates what is transmitted.
"""

import numpy as np


class LevelDetector:
    """
    Mean-absolute-amplitude speaking detector.

    Each observed frame is classified on its own (no smoothing, no hold).
    The detector remembers the previous classification so callers can emit
    a signal only when it flips.
    """
    def __init__(self, threshold: float):
        if threshold < 0:
            raise ValueError("threshold must be >= 0")
        self._threshold = threshold
        self._speaking = False
        self._last_level = 0.0

    @property
    def speaking(self) -> bool:
        """Classification of the most recent frame."""
        return self._speaking

    @property
    def last_level(self) -> float:
        """Mean absolute amplitude of the most recent frame."""
        return self._last_level

    def observe(self, f32: np.ndarray) -> bool:
        """
        Observe one frame and return True if the classification changed.

        Args:
            f32:
                float32 samples for one capture frame (any shape).
        """
        level = float(np.mean(np.abs(f32))) if f32.size else 0.0
        speaking = level > self._threshold

        changed = speaking != self._speaking
        self._speaking = speaking
        self._last_level = level
        return changed

    def reset(self) -> None:
        """Forget the previous classification."""
        self._speaking = False
        self._last_level = 0.0
