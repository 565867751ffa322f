"""
PCM playback engine.

Owns one decoded clip, one gain stage and at most one active source node,
and exposes transport controls (play / pause / seek / stop / volume) whose
timeline is computed against the audio context's clock.

State machine:
    EMPTY -> LOADED -> PLAYING <-> PAUSED
    PLAYING/PAUSED -> LOADED      (stop, natural end, new load)
    any            -> EMPTY       (close)

Timeline:
    current_time = offset                       when not PLAYING
                 = clock_now - anchor           when PLAYING
    always clamped to [0, duration].

The engine is single-threaded from the caller's point of view. The device
renders on its own thread; on_ended notifications come back through the
context's dispatcher.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

from audio.frames import AudioClip
from audio.pcm import decode_clip
from audio.platform import AudioContext, ContextFactory, EndedCallback, GainStage, SourceNode
from constants import DEFAULT_VOLUME, PLAYBACK_CHANNELS, PLAYBACK_SAMPLE_RATE_HZ, clamp
from observability.logger import log_event
from observability.metrics import timed


class PlayerState(str, Enum):
    """Transport state of a PCMAudioPlayer."""

    EMPTY = "EMPTY"
    LOADED = "LOADED"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"


@dataclass
class _PlaybackRun:
    """
    One started source node and the callback registered for it.

    stopped_manually:
        Set before the node is stopped by pause/seek/stop/close. The
        platform reports manual stops through on_ended as well, so this is
        the only way to tell them apart from a natural end.
    """
    node: SourceNode
    on_ended: EndedCallback | None
    stopped_manually: bool = False
    ended: bool = False


class PCMAudioPlayer:
    """
    Transport-controlled player for base64 PCM16 clips.

    The audio context is opened on the first load() and released by
    close(). Use as a context manager to guarantee release:

        with PCMAudioPlayer(context_factory=factory) as player:
            await player.load(b64)
            player.play(on_ended=done)
    """

    def __init__(
        self,
        *,
        context_factory: ContextFactory,
        sample_rate: int = PLAYBACK_SAMPLE_RATE_HZ,
        channels: int = PLAYBACK_CHANNELS,
        player_id: str | None = None,
    ) -> None:
        self.player_id = player_id or f"player_{uuid4().hex[:8]}"
        self._context_factory = context_factory
        self._sample_rate = sample_rate
        self._channels = channels

        self._ctx: AudioContext | None = None
        self._gain: GainStage | None = None
        self._clip: AudioClip | None = None
        self._run: _PlaybackRun | None = None

        self._state = PlayerState.EMPTY
        self._anchor = 0.0
        self._offset = 0.0
        self._volume = DEFAULT_VOLUME

    def __enter__(self) -> PCMAudioPlayer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def volume(self) -> float:
        return self._volume

    def get_duration(self) -> float:
        """Duration of the loaded clip in seconds (0.0 when empty)."""
        return self._clip.duration if self._clip is not None else 0.0

    def get_current_time(self) -> float:
        """Playback position in seconds, clamped to [0, duration]."""
        if self._state is PlayerState.PLAYING and self._ctx is not None:
            t = self._ctx.current_time - self._anchor
        else:
            t = self._offset
        return clamp(t, 0.0, self.get_duration())

    def snapshot(self) -> dict[str, object]:
        """Lightweight snapshot for logging / status endpoints."""
        return {
            "player_id": self.player_id,
            "state": self._state.value,
            "current_time": self.get_current_time(),
            "duration": self.get_duration(),
            "volume": self._volume,
        }

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, base64_audio: str) -> float:
        """
        Decode a base64 PCM16 clip and make it the current clip.

        Decoding runs off the event loop and completes before anything is
        replaced, so a failed load leaves the current clip untouched.

        Returns:
            Duration of the new clip in seconds.

        Raises:
            DecodeError, MalformedBufferError
        """
        with timed("clip_decode", component=self.player_id):
            clip = await asyncio.to_thread(
                decode_clip,
                base64_audio,
                sample_rate=self._sample_rate,
                channels=self._channels,
            )

        self._ensure_context()
        self._halt()

        self._clip = clip
        self._offset = 0.0
        self._state = PlayerState.LOADED

        log_event({
            "event_type": "PLAYER_CLIP_LOADED",
            "player_id": self.player_id,
            "duration_s": clip.duration,
            "frames": clip.frame_count,
        })
        return clip.duration

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def play(self, on_ended: EndedCallback | None = None) -> None:
        """
        Start (or resume) playback from the current offset.

        A no-op when nothing is loaded. Any active node is stopped first.
        `on_ended` fires once if this playback reaches the end of the clip.
        """
        if self._clip is None or self._ctx is None or self._gain is None:
            log_event({
                "event_type": "PLAYER_PLAY_IGNORED",
                "player_id": self.player_id,
                "reason": "no_clip",
            })
            return

        self._halt()

        node = self._ctx.create_source(self._clip, self._gain)
        run = _PlaybackRun(node=node, on_ended=on_ended)
        node.on_ended = lambda: self._handle_ended(run)

        offset = clamp(self._offset, 0.0, self._clip.duration)
        node.start(0.0, offset)

        self._anchor = self._ctx.current_time - offset
        self._run = run
        self._state = PlayerState.PLAYING

        log_event({
            "event_type": "PLAYER_PLAY",
            "player_id": self.player_id,
            "offset_s": offset,
        })

    def pause(self) -> None:
        """Freeze the position. No-op unless playing; never fires on_ended."""
        if self._state is not PlayerState.PLAYING:
            return

        self._offset = self.get_current_time()
        self._halt()
        self._state = PlayerState.PAUSED

        log_event({
            "event_type": "PLAYER_PAUSE",
            "player_id": self.player_id,
            "offset_s": self._offset,
        })

    def seek(self, time_s: float) -> None:
        """
        Move the position to time_s (clamped to [0, duration]).

        While playing, the active node is replaced by one starting at the
        new position and carrying the same on_ended callback. Otherwise only
        the resume offset changes.
        """
        if self._clip is None:
            return

        target = clamp(float(time_s), 0.0, self._clip.duration)

        if self._state is PlayerState.PLAYING:
            on_ended = self._run.on_ended if self._run is not None else None
            self._halt()
            self._offset = target
            self.play(on_ended)
            return

        self._offset = target
        log_event({
            "event_type": "PLAYER_SEEK",
            "player_id": self.player_id,
            "offset_s": target,
            "state": self._state.value,
        })

    def stop(self) -> None:
        """Stop playback and rewind to 0. Never fires on_ended."""
        self._halt()
        self._offset = 0.0
        self._state = PlayerState.LOADED if self._clip is not None else PlayerState.EMPTY

    def set_volume(self, value: float) -> None:
        """Set linear volume in [0, 1]; persists across plays."""
        self._volume = clamp(float(value), 0.0, 1.0)
        if self._gain is not None:
            self._gain.gain = self._volume

    def close(self) -> None:
        """Stop playback and release the audio context. Idempotent."""
        self._halt()

        ctx, self._ctx = self._ctx, None
        self._gain = None
        self._clip = None
        self._offset = 0.0
        self._state = PlayerState.EMPTY

        if ctx is not None:
            ctx.close()
            log_event({"event_type": "PLAYER_CLOSED", "player_id": self.player_id})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_context(self) -> None:
        if self._ctx is not None and not self._ctx.closed:
            return

        ctx = self._context_factory(self._sample_rate)
        try:
            gain = ctx.create_gain()
            gain.gain = self._volume
        except Exception:
            ctx.close()
            raise

        self._ctx, self._gain = ctx, gain

    def _halt(self) -> None:
        """Stop the active node, suppressing its on_ended."""
        run, self._run = self._run, None
        if run is None:
            return
        run.stopped_manually = True
        run.node.stop()

    def _handle_ended(self, run: _PlaybackRun) -> None:
        if run.stopped_manually or run.ended:
            return
        run.ended = True

        if self._run is run:
            self._run = None
            self._offset = 0.0
            self._state = PlayerState.LOADED

        log_event({"event_type": "PLAYER_ENDED", "player_id": self.player_id})

        if run.on_ended is not None:
            run.on_ended()
