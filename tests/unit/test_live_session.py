# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any, AsyncIterator

import numpy as np
import pytest

from adapters.live.base import LiveChannel
from audio.capture import MicrophoneCapture
from audio.errors import DecodeError, PermissionDenied, RemoteChannelError
from audio.frames import AudioChunk
from audio.mixer import MixingContext
from audio.pcm import encode_base64, float_to_pcm16
from audio.platform import BlockCallback, MicrophoneSource
from observability import logger
from protocol.live_messages import InboundAudio, Interrupted, TurnComplete
from session.live_session import LiveSession
from session.status import LiveStatus


class FakeChannel(LiveChannel):
    def __init__(self, fail_connect: Exception | None = None) -> None:
        self.fail_connect = fail_connect
        self.inbound: asyncio.Queue[Any] | None = None
        self.sent: list[AudioChunk] = []
        self.close_calls = 0

    async def connect(self) -> None:
        if self.fail_connect is not None:
            raise self.fail_connect
        self.inbound = asyncio.Queue()

    async def send_audio(self, chunk: AudioChunk) -> None:
        self.sent.append(chunk)

    async def receive(self) -> AsyncIterator[Any]:
        assert self.inbound is not None
        while True:
            message = await self.inbound.get()
            if message is None:
                return
            if isinstance(message, Exception):
                raise message
            yield message

    async def close(self) -> None:
        self.close_calls += 1


class FakeMicrophone(MicrophoneSource):
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.callback: BlockCallback | None = None
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self.callback is not None

    def open(self, *, sample_rate: int, channels: int, block_samples: int, callback: BlockCallback) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.callback = callback

    def close(self) -> None:
        self.close_calls += 1
        self.callback = None


class Harness:
    def __init__(self, **session_kwargs: Any) -> None:
        self.channel = session_kwargs.pop("channel", None) or FakeChannel()
        self.mic = session_kwargs.pop("microphone", None) or FakeMicrophone()
        self.contexts: list[MixingContext] = []
        self.statuses: list[LiveStatus] = []
        self.speaking: list[bool] = []
        self.session = LiveSession(
            channel=self.channel,
            microphone=self.mic,
            context_factory=self._context,
            on_status=self.statuses.append,
            on_speaking=self.speaking.append,
            **session_kwargs,
        )

    def _context(self, sample_rate: int) -> MixingContext:
        ctx = MixingContext(sample_rate)
        self.contexts.append(ctx)
        return ctx

    @property
    def ctx(self) -> MixingContext:
        return self.contexts[-1]


@pytest.fixture(autouse=True)
def _no_previous_owner(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(MicrophoneCapture, "_owner", None)


def _chunk(seconds: float) -> str:
    return encode_base64(np.full(int(seconds * 24000), 500, dtype="<i2").tobytes())


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def test_open_and_close_status_sequence():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        assert h.session.status is LiveStatus.ACTIVE
        assert h.mic.is_open
        await h.session.close()

    asyncio.run(scenario())

    assert h.statuses == [LiveStatus.CONNECTING, LiveStatus.ACTIVE, LiveStatus.DISCONNECTED]
    assert h.ctx.closed
    assert not h.mic.is_open
    assert h.channel.close_calls == 1


def test_close_is_idempotent():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        await h.session.close()
        await h.session.close()

    asyncio.run(scenario())

    assert h.channel.close_calls == 1
    assert h.mic.close_calls == 1
    assert h.statuses.count(LiveStatus.DISCONNECTED) == 1


def test_chunks_are_scheduled_back_to_back():
    h = Harness()
    starts: list[float] = []

    async def scenario() -> None:
        await h.session.open()
        h.ctx.advance(0.05)
        starts.append(h.session.schedule_audio(_chunk(0.1)))
        starts.append(h.session.schedule_audio(_chunk(0.2)))
        starts.append(h.session.schedule_audio(_chunk(0.15)))
        await h.session.close()

    asyncio.run(scenario())

    assert starts == pytest.approx([0.05, 0.15, 0.35])
    assert h.session.underruns == 0


def test_late_chunk_starts_now_and_counts_underrun():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        h.session.schedule_audio(_chunk(0.1))
        h.ctx.advance(0.5)
        start = h.session.schedule_audio(_chunk(0.1))
        assert start == pytest.approx(0.5)
        assert h.session.cursor == pytest.approx(0.6)
        await h.session.close()

    asyncio.run(scenario())

    assert h.session.underruns == 1


def test_played_chunks_are_forgotten():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        h.session.schedule_audio(_chunk(0.1))
        h.session.schedule_audio(_chunk(0.1))
        assert h.session.scheduled_count == 2
        h.ctx.advance(0.25)
        assert h.session.scheduled_count == 0
        await h.session.close()

    asyncio.run(scenario())


def test_interrupt_resets_cursor_and_keeps_scheduled_audio():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        h.session.schedule_audio(_chunk(0.5))
        h.session.schedule_audio(_chunk(0.5))
        h.ctx.advance(0.1)

        h.session.interrupt()
        assert h.session.cursor == 0.0
        assert h.session.scheduled_count == 2

        start = h.session.schedule_audio(_chunk(0.1))
        assert start == pytest.approx(0.1)
        await h.session.close()

    asyncio.run(scenario())

    assert h.session.interruptions == 1


def test_interrupt_can_stop_scheduled_audio():
    h = Harness(stop_scheduled_on_interrupt=True)

    async def scenario() -> None:
        await h.session.open()
        h.session.schedule_audio(_chunk(0.5))
        h.session.schedule_audio(_chunk(0.5))

        h.session.interrupt()

        assert h.session.scheduled_count == 0
        assert h.ctx.active_sources == 0
        await h.session.close()

    asyncio.run(scenario())


def test_close_stops_scheduled_audio():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        h.session.schedule_audio(_chunk(1.0))
        await h.session.close()

    asyncio.run(scenario())

    assert h.session.scheduled_count == 0
    assert h.session.cursor == 0.0


def test_inbound_messages_are_applied_in_order():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        assert h.channel.inbound is not None
        await h.channel.inbound.put(InboundAudio(data=_chunk(0.1)))
        await h.channel.inbound.put(InboundAudio(data=_chunk(0.1)))
        await h.channel.inbound.put(Interrupted())
        await h.channel.inbound.put(TurnComplete())
        await _settle()

        assert h.session.chunks_scheduled == 2
        assert h.session.interruptions == 1
        assert h.session.turns_completed == 1
        assert h.session.cursor == 0.0
        await h.session.close()

    asyncio.run(scenario())


def test_corrupt_inbound_audio_is_dropped():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        assert h.channel.inbound is not None
        await h.channel.inbound.put(InboundAudio(data="%%%"))
        await h.channel.inbound.put(InboundAudio(data=encode_base64(b"\x00")))
        await _settle()

        assert h.session.status is LiveStatus.ACTIVE
        assert h.session.chunks_dropped == 2
        assert h.session.scheduled_count == 0
        await h.session.close()

    asyncio.run(scenario())


def test_schedule_audio_surfaces_decode_errors():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        with pytest.raises(DecodeError):
            h.session.schedule_audio("not base64!")
        await h.session.close()

    asyncio.run(scenario())


def test_schedule_audio_requires_open_session():
    h = Harness()

    with pytest.raises(RuntimeError):
        h.session.schedule_audio(_chunk(0.1))


def test_microphone_frames_are_sent_in_order():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        assert h.mic.callback is not None
        h.mic.callback(np.full(4096, 0.2, dtype=np.float32))
        h.mic.callback(np.zeros(4096, dtype=np.float32))
        await _settle()
        await h.session.close()

    asyncio.run(scenario())

    assert len(h.channel.sent) == 2
    assert h.channel.sent[0].mime_type == "audio/pcm;rate=16000"
    assert h.channel.sent[0].data != h.channel.sent[1].data
    assert h.session.chunks_sent == 2
    assert h.speaking == [True, False]


def test_connect_failure_moves_to_error_and_releases():
    channel = FakeChannel(fail_connect=RemoteChannelError("auth rejected"))
    h = Harness(channel=channel)

    async def scenario() -> None:
        with pytest.raises(RemoteChannelError):
            await h.session.open()

    asyncio.run(scenario())

    assert h.session.status is LiveStatus.ERROR
    assert h.session.error == "auth rejected"
    assert h.statuses == [LiveStatus.CONNECTING, LiveStatus.ERROR]
    assert h.ctx.closed
    assert not h.mic.is_open


def test_microphone_denied_moves_to_error_and_releases():
    mic = FakeMicrophone(fail_with=PermissionDenied("microphone permission denied"))
    h = Harness(microphone=mic)

    async def scenario() -> None:
        with pytest.raises(PermissionDenied):
            await h.session.open()
        await h.session.close()

    asyncio.run(scenario())

    assert h.session.status is LiveStatus.ERROR
    assert h.ctx.closed
    assert h.channel.close_calls == 1


def test_receive_failure_moves_to_error():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        assert h.channel.inbound is not None
        await h.channel.inbound.put(RemoteChannelError("socket reset"))
        await _settle()

    asyncio.run(scenario())

    assert h.session.status is LiveStatus.ERROR
    assert h.session.error == "socket reset"
    assert h.ctx.closed
    assert not h.mic.is_open
    assert h.channel.close_calls == 1


def test_remote_close_disconnects():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        assert h.channel.inbound is not None
        await h.channel.inbound.put(None)
        await _settle()

    asyncio.run(scenario())

    assert h.session.status is LiveStatus.DISCONNECTED
    assert h.ctx.closed


def test_session_cannot_be_reopened():
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        await h.session.close()
        with pytest.raises(RuntimeError):
            await h.session.open()

    asyncio.run(scenario())


class SlowConnectChannel(FakeChannel):
    async def connect(self) -> None:
        await asyncio.sleep(0.05)
        await super().connect()


class CountingMicrophone(FakeMicrophone):
    def __init__(self) -> None:
        super().__init__()
        self.opens = 0

    def open(self, *, sample_rate: int, channels: int, block_samples: int, callback: BlockCallback) -> None:
        self.opens += 1
        super().open(sample_rate=sample_rate, channels=channels, block_samples=block_samples, callback=callback)


def test_close_during_connect_never_opens_microphone():
    mic = CountingMicrophone()
    h = Harness(channel=SlowConnectChannel(), microphone=mic)

    async def scenario() -> None:
        opening = asyncio.create_task(h.session.open())
        await asyncio.sleep(0.01)
        await h.session.close()
        await opening

    asyncio.run(scenario())

    assert mic.opens == 0
    assert not mic.is_open
    assert h.session.status is LiveStatus.DISCONNECTED
    assert h.statuses == [LiveStatus.CONNECTING, LiveStatus.DISCONNECTED]
    assert h.ctx.closed
    assert h.channel.close_calls >= 1


class AbortingConnectChannel(FakeChannel):
    """Mirrors a transport that fails its handshake once closed."""

    async def connect(self) -> None:
        await asyncio.sleep(0.05)
        if self.close_calls:
            raise RemoteChannelError("live channel closed during connect")
        await super().connect()


def test_close_during_connect_swallows_the_aborted_handshake():
    mic = CountingMicrophone()
    h = Harness(channel=AbortingConnectChannel(), microphone=mic)

    async def scenario() -> None:
        opening = asyncio.create_task(h.session.open())
        await asyncio.sleep(0.01)
        await h.session.close()
        await opening

    asyncio.run(scenario())

    assert mic.opens == 0
    assert h.session.status is LiveStatus.DISCONNECTED
    assert h.session.error is None
    assert h.ctx.closed


class StalledChannel(FakeChannel):
    def __init__(self) -> None:
        super().__init__()
        self.unblock = asyncio.Event()

    async def send_audio(self, chunk: AudioChunk) -> None:
        await self.unblock.wait()
        await super().send_audio(chunk)


def _frame(value: float) -> np.ndarray:
    return np.full(4096, value, dtype=np.float32)


def _wire(value: float) -> str:
    return encode_base64(float_to_pcm16(_frame(value)))


def test_stalled_channel_drops_oldest_outbound_chunks():
    holder: dict[str, Harness] = {}

    async def scenario() -> None:
        # 1.0 s of 4096-sample frames at 16 kHz holds three chunks
        h = Harness(channel=StalledChannel(), outbound_max_s=1.0)
        holder["h"] = h
        await h.session.open()
        assert h.mic.callback is not None

        h.mic.callback(_frame(0.01))
        await _settle()
        for i in range(2, 8):
            h.mic.callback(_frame(0.01 * i))
        await _settle()

        h.channel.unblock.set()
        await _settle()
        await h.session.close()

    asyncio.run(scenario())

    h = holder["h"]
    sent = [chunk.data for chunk in h.channel.sent]
    assert sent == [_wire(0.01), _wire(0.05), _wire(0.06), _wire(0.07)]
    assert h.session.chunks_overflowed == 3
    assert h.session.snapshot()["chunks_overflowed"] == 3


def test_outbound_limit_must_be_positive():
    with pytest.raises(ValueError):
        Harness(outbound_max_s=0)


def test_speaking_change_after_loop_closed_is_logged(monkeypatch: pytest.MonkeyPatch):
    h = Harness()

    async def scenario() -> None:
        await h.session.open()
        await h.session.close()

    asyncio.run(scenario())

    lines: list[str] = []
    monkeypatch.setattr(logger, "_print", lines.append)

    h.session._on_capture_speaking(True)  # pylint: disable=protected-access

    events = [json.loads(line) for line in lines]
    assert [e["event_type"] for e in events] == ["LIVE_SPEAKING_DROPPED"]
    assert events[0]["speaking"] is True
    assert h.speaking == []
