"""
Platform audio capability contract.

This module defines the *interface only*: the handful of operations the
playback engine, capture pipeline and live session actually use.

Implementations:
- audio.mixer.MixingContext      sample-clock mixer (no device; tests, offline)
- audio.device.DeviceAudioContext sounddevice output stream driving the mixer
- audio.device.SoundDeviceMicrophone sounddevice input stream

Semantics mirror a browser audio graph:
- A context owns a monotonically advancing clock (`current_time`, seconds).
- Sources are one-shot: start() once, stop() any number of times.
- `on_ended` fires when a started source finishes, whether it reached the
  end of its clip or was stopped. Callers that need to tell the two apart
  must track manual stops themselves.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

from audio.frames import AudioClip


EndedCallback = Callable[[], None]
BlockCallback = Callable[[np.ndarray], None]


class SourceNode(ABC):
    """One scheduled playback of a clip."""

    on_ended: EndedCallback | None = None

    @abstractmethod
    def start(self, when: float = 0.0, offset: float = 0.0) -> None:
        """
        Schedule playback.

        Args:
            when: Context time (seconds) at which audio begins. Times in the
                past mean "as soon as possible".
            offset: Position inside the clip (seconds) to start from.

        Contract:
        - May be called once per node.
        """
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """
        Stop playback now.

        Contract:
        - Idempotent.
        - Fires on_ended if the node had been started and not yet ended.
        """
        raise NotImplementedError


class GainStage(ABC):
    """Amplitude scaling applied to every source routed through it."""

    @property
    @abstractmethod
    def gain(self) -> float:
        """Current linear gain."""
        raise NotImplementedError

    @gain.setter
    @abstractmethod
    def gain(self, value: float) -> None:
        raise NotImplementedError


class AudioContext(ABC):
    """An output device (or stand-in) with its own clock."""

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Rendering sample rate."""
        raise NotImplementedError

    @property
    @abstractmethod
    def current_time(self) -> float:
        """Audio clock in seconds since the context was opened."""
        raise NotImplementedError

    @property
    @abstractmethod
    def closed(self) -> bool:
        """True once close() has been called."""
        raise NotImplementedError

    @abstractmethod
    def create_gain(self) -> GainStage:
        """Create a gain stage connected to the context output."""
        raise NotImplementedError

    @abstractmethod
    def create_source(self, clip: AudioClip, destination: GainStage) -> SourceNode:
        """Create an unstarted source playing `clip` into `destination`."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """
        Release the device.

        Contract:
        - Idempotent.
        - Silences every source; does not fire on_ended.
        """
        raise NotImplementedError


class MicrophoneSource(ABC):
    """Exclusive access to one audio input device."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the input stream is running."""
        raise NotImplementedError

    @abstractmethod
    def open(
        self,
        *,
        sample_rate: int,
        channels: int,
        block_samples: int,
        callback: BlockCallback,
    ) -> None:
        """
        Acquire the device and start delivering blocks.

        `callback` runs on the platform's audio thread with float32 samples
        shaped (frames,) for mono input.

        Raises:
            PermissionDenied, DeviceUnavailable
        """
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Stop delivery and release the device. Idempotent."""
        raise NotImplementedError


ContextFactory = Callable[[int], AudioContext]
