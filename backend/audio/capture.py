"""
Microphone capture pipeline.

Device blocks -> fixed 4096-sample frames -> level check -> PCM16 ->
base64 -> AudioChunk -> sink.

Every frame is forwarded; the level check only drives the speaking signal.

Threading:
- process_block() runs on the device callback thread. The sink and the
  speaking callback are invoked there too; the owner is responsible for
  handing work back to its event loop.
"""

from __future__ import annotations

import asyncio
from typing import Callable, ClassVar

import numpy as np

from audio.frames import AudioChunk
from audio.framing import FrameAligner
from audio.level import LevelDetector
from audio.pcm import encode_base64, float_to_pcm16
from audio.platform import MicrophoneSource
from constants import (
    CAPTURE_CHANNELS,
    CAPTURE_FRAME_SAMPLES,
    CAPTURE_SAMPLE_RATE_HZ,
    SPEAKING_LEVEL_THRESHOLD,
)
from observability.logger import log_event


ChunkSink = Callable[[AudioChunk], None]
SpeakingCallback = Callable[[bool], None]


class MicrophoneCapture:
    """
    Streams the microphone as base64 PCM16 chunks.

    Only one capture may hold the microphone at a time within a process.
    Starting a second capture stops the first.
    """

    _owner: ClassVar[MicrophoneCapture | None] = None

    def __init__(
        self,
        *,
        source: MicrophoneSource,
        sink: ChunkSink,
        on_speaking: SpeakingCallback | None = None,
        frame_samples: int = CAPTURE_FRAME_SAMPLES,
        sample_rate: int = CAPTURE_SAMPLE_RATE_HZ,
        threshold: float = SPEAKING_LEVEL_THRESHOLD,
    ) -> None:
        self._source = source
        self._sink = sink
        self._on_speaking = on_speaking
        self._sample_rate = sample_rate
        self._mime_type = f"audio/pcm;rate={sample_rate}"

        self._aligner = FrameAligner(frame_samples)
        self._level = LevelDetector(threshold)
        self._running = False

        self.frames_sent = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def is_speaking(self) -> bool:
        return self._level.speaking

    async def start(self) -> MicrophoneSource:
        """
        Acquire the microphone and begin streaming.

        Returns:
            The open microphone stream.

        Raises:
            PermissionDenied, DeviceUnavailable
        """
        if self._running:
            return self._source

        previous = MicrophoneCapture._owner
        if previous is not None and previous is not self:
            log_event({"event_type": "CAPTURE_PREEMPTED"})
            previous.stop()

        # Device blocks may arrive before open() returns
        self._running = True
        try:
            await asyncio.to_thread(
                self._source.open,
                sample_rate=self._sample_rate,
                channels=CAPTURE_CHANNELS,
                block_samples=self._aligner.frame_samples,
                callback=self.process_block,
            )
        except BaseException:
            self._running = False
            raise

        MicrophoneCapture._owner = self
        log_event({
            "event_type": "CAPTURE_STARTED",
            "sample_rate": self._sample_rate,
            "frame_samples": self._aligner.frame_samples,
        })
        return self._source

    def process_block(self, block: np.ndarray) -> None:
        """Feed one device block; emits zero or more chunks."""
        if not self._running:
            return
        for frame in self._aligner.add(block):
            self._emit(frame)

    def stop(self) -> None:
        """Release the microphone. Idempotent."""
        was_running = self._running
        was_speaking = self._level.speaking
        self._running = False

        try:
            self._source.close()
        finally:
            self._aligner.clear_buffer()
            self._level.reset()
            if MicrophoneCapture._owner is self:
                MicrophoneCapture._owner = None

        if was_speaking and self._on_speaking is not None:
            self._on_speaking(False)

        if was_running:
            log_event({"event_type": "CAPTURE_STOPPED", "frames_sent": self.frames_sent})

    def _emit(self, frame: np.ndarray) -> None:
        if self._level.observe(frame) and self._on_speaking is not None:
            self._on_speaking(self._level.speaking)

        chunk = AudioChunk(
            data=encode_base64(float_to_pcm16(frame)),
            mime_type=self._mime_type,
        )
        self.frames_sent += 1
        self._sink(chunk)
