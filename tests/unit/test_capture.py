# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import base64
from typing import Any

import numpy as np
import pytest

from audio.capture import MicrophoneCapture
from audio.errors import PermissionDenied
from audio.frames import AudioChunk
from audio.platform import BlockCallback, MicrophoneSource


class FakeMicrophone(MicrophoneSource):
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.callback: BlockCallback | None = None
        self.open_kwargs: dict[str, Any] = {}
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self.callback is not None

    def open(self, *, sample_rate: int, channels: int, block_samples: int, callback: BlockCallback) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.open_kwargs = {
            "sample_rate": sample_rate,
            "channels": channels,
            "block_samples": block_samples,
        }
        self.callback = callback

    def close(self) -> None:
        self.close_calls += 1
        self.callback = None


@pytest.fixture(autouse=True)
def _no_previous_owner(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(MicrophoneCapture, "_owner", None)


def _started(**kwargs: Any) -> tuple[MicrophoneCapture, FakeMicrophone, list[AudioChunk], list[bool]]:
    mic = FakeMicrophone()
    chunks: list[AudioChunk] = []
    speaking: list[bool] = []
    capture = MicrophoneCapture(source=mic, sink=chunks.append, on_speaking=speaking.append, **kwargs)
    asyncio.run(capture.start())
    return capture, mic, chunks, speaking


def test_start_opens_microphone_at_capture_format():
    capture, mic, _, _ = _started()

    assert capture.running
    assert mic.open_kwargs == {"sample_rate": 16000, "channels": 1, "block_samples": 4096}


def test_start_returns_the_open_stream():
    mic = FakeMicrophone()
    capture = MicrophoneCapture(source=mic, sink=lambda chunk: None)

    async def scenario() -> tuple[MicrophoneSource, MicrophoneSource]:
        first = await capture.start()
        again = await capture.start()
        return first, again

    first, again = asyncio.run(scenario())

    assert first is mic
    assert again is mic
    assert mic.is_open


def test_full_frame_becomes_one_pcm16_chunk():
    capture, _, chunks, _ = _started()

    capture.process_block(np.full(4096, 0.25, dtype=np.float32))

    assert len(chunks) == 1
    assert chunks[0].mime_type == "audio/pcm;rate=16000"
    pcm = np.frombuffer(base64.b64decode(chunks[0].data), dtype="<i2")
    assert pcm.shape == (4096,)
    assert int(pcm[0]) == int(0.25 * 32767)
    assert capture.frames_sent == 1


def test_small_blocks_are_reframed():
    capture, _, chunks, _ = _started()

    for _ in range(5):
        capture.process_block(np.zeros(1000, dtype=np.float32))

    assert len(chunks) == 1

    for _ in range(4):
        capture.process_block(np.zeros(1000, dtype=np.float32))

    assert len(chunks) == 2


def test_silence_is_still_forwarded():
    capture, _, chunks, speaking = _started()

    capture.process_block(np.zeros(4096, dtype=np.float32))
    capture.process_block(np.zeros(4096, dtype=np.float32))

    assert len(chunks) == 2
    assert speaking == []
    assert not capture.is_speaking


def test_speaking_signal_emitted_only_on_change():
    capture, _, _, speaking = _started()
    loud = np.full(4096, 0.3, dtype=np.float32)
    quiet = np.full(4096, 0.01, dtype=np.float32)

    capture.process_block(loud)
    capture.process_block(loud)
    capture.process_block(quiet)
    capture.process_block(quiet)
    capture.process_block(loud)

    assert speaking == [True, False, True]


def test_threshold_is_strictly_greater_than():
    capture, _, _, speaking = _started(threshold=0.5)

    capture.process_block(np.full(4096, 0.5, dtype=np.float32))

    assert speaking == []


def test_stop_releases_and_ignores_late_blocks():
    capture, mic, chunks, _ = _started()
    capture.process_block(np.zeros(3000, dtype=np.float32))

    capture.stop()
    capture.stop()
    capture.process_block(np.zeros(4096, dtype=np.float32))

    assert not capture.running
    assert not mic.is_open
    assert chunks == []


def test_stop_while_speaking_reports_silence():
    capture, _, _, speaking = _started()
    capture.process_block(np.full(4096, 0.5, dtype=np.float32))

    capture.stop()

    assert speaking == [True, False]


def test_second_capture_takes_over_microphone():
    first, first_mic, _, _ = _started()

    second, _, _, _ = _started()

    assert not first.running
    assert first_mic.close_calls == 1
    assert second.running


def test_permission_failure_propagates():
    mic = FakeMicrophone(fail_with=PermissionDenied("denied by user"))
    capture = MicrophoneCapture(source=mic, sink=lambda chunk: None)

    with pytest.raises(PermissionDenied):
        asyncio.run(capture.start())

    assert not capture.running
