"""
Live conversation session.

Responsibilities:
- Owns one live channel, one microphone capture and one output context
- Streams capture chunks to the channel in order
- Schedules inbound model audio gaplessly on the output clock
- Applies remote interruptions
- Releases every resource exactly once, on close or on the first failure

Scheduling:
    start_i  = max(cursor, clock_now)
    cursor  := start_i + duration_i

With the cursor ahead of the clock, consecutive chunks are back to back.
When the clock has overtaken the cursor (the network fell behind) the next
chunk starts immediately; that gap is counted as an underrun.

Interruption resets the cursor so the next chunk starts immediately.
Already scheduled chunks keep playing unless stop_scheduled_on_interrupt
is set.

Outbound microphone chunks wait in a bounded queue (LIVE_OUTBOUND_QUEUE_MAX_S
of audio). While the channel is stalled the oldest chunk is dropped first.

NOT responsible for:
- Reconnecting (a failed session stays in ERROR)
- Choosing the remote model or voice (channel construction)
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine
from uuid import uuid4

from adapters.live.base import LiveChannel
from audio.capture import MicrophoneCapture
from audio.errors import DecodeError, MalformedBufferError
from audio.frames import AudioChunk
from audio.pcm import decode_clip
from audio.platform import AudioContext, ContextFactory, GainStage, MicrophoneSource, SourceNode
from constants import (
    CAPTURE_FRAME_SAMPLES,
    CAPTURE_SAMPLE_RATE_HZ,
    LIVE_CURSOR_RESET,
    LIVE_OUTBOUND_QUEUE_MAX_S,
    PLAYBACK_CHANNELS,
    PLAYBACK_SAMPLE_RATE_HZ,
)
from observability.logger import log_event
from observability.metrics import timed
from protocol.live_messages import InboundAudio, InboundMessage, Interrupted, TurnComplete
from session.status import LiveStatus


StatusCallback = Callable[[LiveStatus], None]
SpeakingCallback = Callable[[bool], None]


def _new_session_id() -> str:
    return f"live_{uuid4().hex[:12]}"


class LiveSession:
    """
    One LiveSession == one conversation.

    Usage:
        session = LiveSession(channel=..., microphone=..., context_factory=...)
        await session.open()
        ...
        await session.close()
    """

    def __init__(
        self,
        *,
        channel: LiveChannel,
        microphone: MicrophoneSource,
        context_factory: ContextFactory,
        stop_scheduled_on_interrupt: bool = False,
        on_status: StatusCallback | None = None,
        on_speaking: SpeakingCallback | None = None,
        session_id: str | None = None,
        sample_rate: int = PLAYBACK_SAMPLE_RATE_HZ,
        frame_samples: int = CAPTURE_FRAME_SAMPLES,
        outbound_max_s: float = LIVE_OUTBOUND_QUEUE_MAX_S,
    ) -> None:
        if outbound_max_s <= 0:
            raise ValueError("outbound_max_s must be > 0")

        self.session_id = session_id or _new_session_id()

        self._channel = channel
        self._context_factory = context_factory
        self._stop_scheduled_on_interrupt = stop_scheduled_on_interrupt
        self._on_status = on_status
        self._on_speaking = on_speaking
        self._sample_rate = sample_rate

        self._capture = MicrophoneCapture(
            source=microphone,
            sink=self._on_capture_chunk,
            on_speaking=self._on_capture_speaking,
            frame_samples=frame_samples,
        )

        self._status = LiveStatus.IDLE
        self._closed = False
        self._speaking = False
        self.error: str | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._outbound: asyncio.Queue[AudioChunk | None] | None = None
        frame_s = frame_samples / CAPTURE_SAMPLE_RATE_HZ
        self._outbound_max_chunks = max(1, int(outbound_max_s / frame_s))
        self._tasks: list[asyncio.Task[None]] = []

        self._ctx: AudioContext | None = None
        self._gain: GainStage | None = None
        self._cursor = LIVE_CURSOR_RESET
        self._scheduled: set[SourceNode] = set()

        # Counters (observability only)
        self.chunks_sent = 0
        self.chunks_scheduled = 0
        self.chunks_dropped = 0
        self.chunks_overflowed = 0
        self.underruns = 0
        self.interruptions = 0
        self.turns_completed = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def status(self) -> LiveStatus:
        return self._status

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def cursor(self) -> float:
        """Context time at which the next inbound chunk would start."""
        return self._cursor

    @property
    def scheduled_count(self) -> int:
        """Scheduled nodes that have not ended yet."""
        return len(self._scheduled)

    def snapshot(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self._status.value,
            "error": self.error,
            "speaking": self._speaking,
            "cursor": self._cursor,
            "scheduled": self.scheduled_count,
            "chunks_sent": self.chunks_sent,
            "chunks_scheduled": self.chunks_scheduled,
            "chunks_dropped": self.chunks_dropped,
            "chunks_overflowed": self.chunks_overflowed,
            "underruns": self.underruns,
            "interruptions": self.interruptions,
            "turns_completed": self.turns_completed,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """
        Acquire the output context, connect the channel, start capture.

        On any failure the session moves to ERROR, releases whatever was
        acquired and re-raises. If close() runs while opening, open()
        releases what it acquired since and returns without raising.
        """
        if self._status is not LiveStatus.IDLE:
            raise RuntimeError(f"live session cannot be opened from {self._status.value}")

        self._loop = asyncio.get_running_loop()
        self._outbound = asyncio.Queue(maxsize=self._outbound_max_chunks)
        self._set_status(LiveStatus.CONNECTING)

        try:
            self._ctx = self._context_factory(self._sample_rate)
            self._gain = self._ctx.create_gain()
            with timed("live_connect", component=self.session_id):
                await self._channel.connect()

            # close() may have run while we were connecting
            if self._closed:
                await self._release()
                return

            await self._capture.start()
        except Exception as e:
            if self._closed:
                # aborted by close()
                await self._release()
                return
            await self._fail(e, stage="open")
            raise

        if self._closed:
            await self._release()
            return

        self._set_status(LiveStatus.ACTIVE)
        self._tasks = [
            asyncio.create_task(self._guard(self._send_loop(), "send")),
            asyncio.create_task(self._guard(self._receive_loop(), "receive")),
        ]

    async def close(self) -> None:
        """Stop capture and playback and close the channel. Idempotent."""
        if self._closed:
            return
        self._closed = True

        await self._release()

        if self._status is not LiveStatus.ERROR:
            self._set_status(LiveStatus.DISCONNECTED)

        log_event({
            "event_type": "LIVE_CLOSED",
            **self.snapshot(),
        })

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, message: InboundMessage) -> None:
        """Apply one inbound message. Corrupt audio chunks are dropped."""
        if isinstance(message, InboundAudio):
            try:
                self.schedule_audio(message.data)
            except (DecodeError, MalformedBufferError) as e:
                self.chunks_dropped += 1
                log_event({
                    "event_type": "LIVE_AUDIO_DROPPED",
                    "session_id": self.session_id,
                    "error": str(e),
                })

        elif isinstance(message, Interrupted):
            self.interrupt()

        elif isinstance(message, TurnComplete):
            self.turns_completed += 1
            log_event({"event_type": "LIVE_TURN_COMPLETE", "session_id": self.session_id})

    def schedule_audio(self, pcm_base64: str) -> float:
        """
        Decode one chunk and schedule it at the cursor.

        Returns:
            The context time at which the chunk starts.

        Raises:
            DecodeError, MalformedBufferError: nothing is scheduled.
            RuntimeError: the session has no output context.
        """
        ctx, gain = self._ctx, self._gain
        if ctx is None or gain is None or ctx.closed:
            raise RuntimeError("live session has no output context")

        clip = decode_clip(pcm_base64, sample_rate=PLAYBACK_SAMPLE_RATE_HZ, channels=PLAYBACK_CHANNELS)

        now = ctx.current_time
        if self._cursor != LIVE_CURSOR_RESET and now > self._cursor:
            self.underruns += 1
            log_event({
                "event_type": "LIVE_PLAYBACK_UNDERRUN",
                "session_id": self.session_id,
                "late_s": now - self._cursor,
            })
        start = max(self._cursor, now)

        node = ctx.create_source(clip, gain)
        node.on_ended = lambda: self._scheduled.discard(node)
        node.start(start)
        self._scheduled.add(node)

        self._cursor = start + clip.duration
        self.chunks_scheduled += 1
        return start

    def interrupt(self) -> None:
        """Reset the cursor so the next chunk plays immediately."""
        self._cursor = LIVE_CURSOR_RESET
        self.interruptions += 1

        stopped = 0
        if self._stop_scheduled_on_interrupt:
            stopped = self._stop_scheduled()

        log_event({
            "event_type": "LIVE_INTERRUPTED",
            "session_id": self.session_id,
            "stopped_nodes": stopped,
        })

    # ------------------------------------------------------------------
    # Capture callbacks (device thread)
    # ------------------------------------------------------------------

    def _on_capture_chunk(self, chunk: AudioChunk) -> None:
        loop, queue = self._loop, self._outbound
        if loop is None or queue is None or self._closed:
            return
        try:
            loop.call_soon_threadsafe(self._enqueue_outbound, chunk)
        except RuntimeError:
            log_event({"event_type": "LIVE_CHUNK_DROPPED", "session_id": self.session_id})

    def _enqueue_outbound(self, item: AudioChunk | None) -> None:
        """Queue for the send loop; when full, the oldest chunk makes room."""
        queue = self._outbound
        if queue is None:
            return
        if queue.full():
            dropped = queue.get_nowait()
            if dropped is not None:
                self.chunks_overflowed += 1
                log_event({
                    "event_type": "LIVE_OUTBOUND_OVERFLOW",
                    "session_id": self.session_id,
                    "queued": queue.qsize(),
                    "chunks_overflowed": self.chunks_overflowed,
                })
        queue.put_nowait(item)

    def _on_capture_speaking(self, speaking: bool) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._apply_speaking, speaking)
        except RuntimeError:
            log_event({
                "event_type": "LIVE_SPEAKING_DROPPED",
                "session_id": self.session_id,
                "speaking": speaking,
            })

    def _apply_speaking(self, speaking: bool) -> None:
        if speaking == self._speaking:
            return
        self._speaking = speaking
        if self._on_speaking is not None:
            self._on_speaking(speaking)

    # ------------------------------------------------------------------
    # Pumps
    # ------------------------------------------------------------------

    async def _send_loop(self) -> None:
        assert self._outbound is not None
        while True:
            chunk = await self._outbound.get()
            if chunk is None:
                return
            await self._channel.send_audio(chunk)
            self.chunks_sent += 1

    async def _receive_loop(self) -> None:
        async for message in self._channel.receive():
            self.handle_message(message)

        if not self._closed:
            log_event({"event_type": "LIVE_REMOTE_CLOSED", "session_id": self.session_id})
            await self.close()

    async def _guard(self, coro: Coroutine[Any, Any, None], stage: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            await self._fail(e, stage=stage)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _fail(self, exc: BaseException, *, stage: str) -> None:
        if self._closed:
            return
        self._closed = True

        self.error = str(exc) or type(exc).__name__
        log_event({
            "event_type": "LIVE_ERROR",
            "session_id": self.session_id,
            "stage": stage,
            "exception": type(exc).__name__,
            "message": self.error,
        })
        self._set_status(LiveStatus.ERROR)
        await self._release()

    async def _release(self) -> None:
        """Release everything acquired so far. Each step runs even if one fails."""
        self._release_step("capture", self._capture.stop)

        self._enqueue_outbound(None)

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        self._tasks = []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self._release_step("scheduled", self._stop_scheduled)

        ctx, self._ctx = self._ctx, None
        self._gain = None
        if ctx is not None:
            self._release_step("context", ctx.close)

        try:
            await self._channel.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log_release_error("channel", e)

        self._cursor = LIVE_CURSOR_RESET

    def _stop_scheduled(self) -> int:
        nodes = list(self._scheduled)
        self._scheduled.clear()
        for node in nodes:
            node.stop()
        return len(nodes)

    def _release_step(self, step: str, fn: Callable[[], object]) -> None:
        try:
            fn()
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log_release_error(step, e)

    def _log_release_error(self, step: str, exc: Exception) -> None:
        log_event({
            "event_type": "LIVE_RELEASE_ERROR",
            "session_id": self.session_id,
            "step": step,
            "exception": type(exc).__name__,
            "message": str(exc),
        })

    def _set_status(self, status: LiveStatus) -> None:
        if status is self._status:
            return
        previous, self._status = self._status, status
        log_event({
            "event_type": "LIVE_STATUS",
            "session_id": self.session_id,
            "from": previous.value,
            "to": status.value,
        })
        if self._on_status is not None:
            self._on_status(status)
