"""
Sample-clock mixing context.

The clock is the number of frames rendered so far divided by the sample
rate: `current_time` only advances when render() is called. A device
context calls render() from its output callback; tests call it directly to
advance time deterministically.

Threading:
- render() may run on a realtime callback thread while start()/stop() are
  called from the control thread. The active-source table is guarded by a
  lock internal to this module; callers never see it.
- on_ended callbacks are handed to `dispatch` outside the lock.
"""

from __future__ import annotations

import threading
from typing import Callable

import numpy as np

from audio.frames import AudioClip
from audio.platform import AudioContext, GainStage, SourceNode
from audio.resample import resample_clip


Dispatch = Callable[[Callable[[], None]], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


class MixerGain(GainStage):
    """Linear gain applied per rendered block."""

    def __init__(self, value: float = 1.0) -> None:
        self._value = float(value)

    @property
    def gain(self) -> float:
        return self._value

    @gain.setter
    def gain(self, value: float) -> None:
        self._value = float(value)


class MixerSource(SourceNode):
    """
    One-shot playback of a clip inside a MixingContext.

    start_frame:
        Absolute context frame at which output begins.
    read_pos:
        Next frame of the clip to render.
    """

    def __init__(self, ctx: MixingContext, clip: AudioClip, destination: MixerGain) -> None:
        self._ctx = ctx
        self.clip = clip
        self.destination = destination
        self.on_ended = None

        self.start_frame = 0
        self.read_pos = 0
        self.started = False
        self.finished = False

    def start(self, when: float = 0.0, offset: float = 0.0) -> None:
        if self.started or self.finished:
            raise RuntimeError("source already started or stopped")
        self.started = True

        sr = self._ctx.sample_rate
        self.start_frame = max(int(round(when * sr)), 0)
        self.read_pos = min(max(int(round(offset * sr)), 0), self.clip.frame_count)
        self._ctx._activate(self)

    def stop(self) -> None:
        if not self.started or self.finished:
            self.finished = True
            return
        if self._ctx._deactivate(self):
            self._ctx._fire_ended([self])


class MixingContext(AudioContext):
    """
    In-process mixer with a frame-counting clock.

    Every clip is converted to the context's sample rate and channel count
    when its source is created, so render() only has to sum.
    """

    def __init__(
        self,
        sample_rate: int,
        *,
        channels: int = 1,
        dispatch: Dispatch | None = None,
    ) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if channels <= 0:
            raise ValueError("channels must be > 0")

        self._sample_rate = sample_rate
        self._channels = channels
        self._dispatch: Dispatch = dispatch or _call_now

        self._lock = threading.Lock()
        self._active: list[MixerSource] = []
        self._frames_rendered = 0
        self._closed = False

    # ------------------------------------------------------------------
    # AudioContext
    # ------------------------------------------------------------------

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        """Output channel count."""
        return self._channels

    @property
    def current_time(self) -> float:
        return self._frames_rendered / self._sample_rate

    @property
    def frames_rendered(self) -> int:
        """Frames produced since the context was opened."""
        return self._frames_rendered

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_sources(self) -> int:
        """Sources started and not yet ended."""
        with self._lock:
            return len(self._active)

    def create_gain(self) -> MixerGain:
        self._ensure_open()
        return MixerGain()

    def create_source(self, clip: AudioClip, destination: GainStage) -> MixerSource:
        self._ensure_open()
        if not isinstance(destination, MixerGain):
            raise TypeError("destination must be a gain stage from this context type")
        return MixerSource(self, self._conform(clip), destination)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with self._lock:
            for src in self._active:
                src.finished = True
            self._active.clear()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, frames: int) -> np.ndarray:
        """
        Produce the next `frames` frames of output and advance the clock.

        Returns:
            float32 array shaped (frames, channels), clipped to [-1, 1].
        """
        out = np.zeros((frames, self._channels), dtype=np.float32)
        ended: list[MixerSource] = []

        with self._lock:
            t0 = self._frames_rendered
            t1 = t0 + frames

            for src in list(self._active):
                if src.start_frame >= t1:
                    continue

                begin = max(src.start_frame - t0, 0)
                n = min(frames - begin, src.clip.frame_count - src.read_pos)
                if n > 0:
                    chunk = src.clip.samples[src.read_pos : src.read_pos + n]
                    out[begin : begin + n] += chunk * np.float32(src.destination.gain)
                    src.read_pos += n

                if src.read_pos >= src.clip.frame_count:
                    src.finished = True
                    self._active.remove(src)
                    ended.append(src)

            self._frames_rendered = t1

        if ended:
            self._fire_ended(ended)

        np.clip(out, -1.0, 1.0, out=out)
        return out

    def advance(self, seconds: float) -> np.ndarray:
        """Render `seconds` worth of audio (rounded to whole frames)."""
        return self.render(max(int(round(seconds * self._sample_rate)), 0))

    # ------------------------------------------------------------------
    # Source bookkeeping (MixerSource only)
    # ------------------------------------------------------------------

    def _activate(self, src: MixerSource) -> None:
        with self._lock:
            if self._closed:
                src.finished = True
                return
            self._active.append(src)

    def _deactivate(self, src: MixerSource) -> bool:
        with self._lock:
            if src.finished:
                return False
            src.finished = True
            if src in self._active:
                self._active.remove(src)
            return True

    def _fire_ended(self, sources: list[MixerSource]) -> None:
        for src in sources:
            callback = src.on_ended
            if callback is not None:
                self._dispatch(callback)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("audio context is closed")

    def _conform(self, clip: AudioClip) -> AudioClip:
        clip = resample_clip(clip, self._sample_rate)
        if clip.channels == self._channels:
            return clip

        if self._channels == 1:
            samples = clip.samples.mean(axis=1, keepdims=True)
        else:
            samples = np.repeat(clip.samples[:, :1], self._channels, axis=1)

        return AudioClip(
            samples=samples.astype(np.float32),
            sample_rate=clip.sample_rate,
            channels=self._channels,
        )
