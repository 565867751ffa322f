"""
Fixed-size framing for live capture.

Purpose:
- Re-chunk whatever block sizes the input device delivers into fixed
  windows of CAPTURE_FRAME_SAMPLES mono float32 samples.

Design:
- No queues, no timing, no IO.
- Never pads; an incomplete trailing window stays buffered until more
  audio arrives or the aligner is cleared.
"""

from __future__ import annotations

import numpy as np

from constants import CAPTURE_FRAME_SAMPLES


class FrameAligner:
    """Rechunk mono float32 audio to exact frame boundaries without loss."""

    def __init__(self, frame_samples: int = CAPTURE_FRAME_SAMPLES) -> None:
        if frame_samples <= 0:
            raise ValueError("frame_samples must be > 0")
        self._frame_samples = frame_samples
        self._buffer = np.zeros(0, dtype=np.float32)

    @property
    def frame_samples(self) -> int:
        """Window size in samples."""
        return self._frame_samples

    @property
    def pending(self) -> int:
        """Samples buffered but not yet emitted."""
        return int(self._buffer.shape[0])

    def add(self, block: np.ndarray) -> list[np.ndarray]:
        """
        Add a block of samples and return every complete window.

        Multi-channel blocks are reduced to their first channel.
        """
        block = np.asarray(block, dtype=np.float32)
        if block.ndim == 2:
            block = block[:, 0]

        # Fast-path: device already delivers exact windows
        if self._buffer.shape[0] == 0 and block.shape[0] == self._frame_samples:
            return [block.copy()]

        self._buffer = np.concatenate((self._buffer, block))

        whole = self._buffer.shape[0] // self._frame_samples
        if whole == 0:
            return []

        end = whole * self._frame_samples
        frames = [
            self._buffer[offset : offset + self._frame_samples].copy()
            for offset in range(0, end, self._frame_samples)
        ]
        self._buffer = self._buffer[end:].copy()
        return frames

    def clear_buffer(self) -> None:
        """Drop any partially accumulated window."""
        self._buffer = np.zeros(0, dtype=np.float32)
