"""
sounddevice (PortAudio) implementations of the platform audio contract.

- DeviceAudioContext: an OutputStream whose callback renders a MixingContext
- SoundDeviceMicrophone: an InputStream delivering fixed-size float32 blocks

sounddevice is imported lazily: importing it raises OSError on hosts without
the PortAudio shared library, which is reported as DeviceUnavailable.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from audio.errors import DeviceError, DeviceUnavailable, PermissionDenied
from audio.mixer import MixingContext
from audio.platform import BlockCallback, ContextFactory, MicrophoneSource
from constants import OUTPUT_BLOCK_FRAMES
from observability.logger import log_event


_PERMISSION_MARKERS = ("permission", "not permitted", "access denied", "not authorized")


def _sounddevice() -> Any:
    try:
        import sounddevice  # pylint: disable=import-outside-toplevel
    except OSError as e:
        raise DeviceUnavailable(f"PortAudio library not available: {e}") from e
    return sounddevice


def map_device_error(exc: Exception) -> DeviceError:
    """Translate a PortAudio / device lookup failure into the audio taxonomy."""
    message = str(exc)
    if any(marker in message.lower() for marker in _PERMISSION_MARKERS):
        return PermissionDenied(message)
    return DeviceUnavailable(message)


def _threadsafe_dispatch(loop: asyncio.AbstractEventLoop) -> Callable[[Callable[[], None]], None]:
    def dispatch(fn: Callable[[], None]) -> None:
        try:
            loop.call_soon_threadsafe(fn)
        except RuntimeError:
            # Loop already closed; the owner is gone
            log_event({"event_type": "AUDIO_CALLBACK_DROPPED", "reason": "loop_closed"})
    return dispatch


# ------------------------------------------------------------------
# Output
# ------------------------------------------------------------------

class DeviceAudioContext(MixingContext):
    """
    Mixer driven by a PortAudio output stream.

    If the device rejects the requested rate, the stream opens at the
    device's default rate and clips are resampled on scheduling.
    """

    def __init__(
        self,
        sample_rate: int,
        *,
        channels: int = 1,
        device: int | str | None = None,
        block_frames: int = OUTPUT_BLOCK_FRAMES,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        sd = _sounddevice()
        rate = self._resolve_rate(sd, device, sample_rate, channels)

        super().__init__(
            rate,
            channels=channels,
            dispatch=_threadsafe_dispatch(loop) if loop is not None else None,
        )

        try:
            self._stream = sd.OutputStream(
                samplerate=rate,
                channels=channels,
                dtype="float32",
                blocksize=block_frames,
                device=device,
                callback=self._callback,
            )
        except (sd.PortAudioError, ValueError) as e:
            super().close()
            raise map_device_error(e) from e

        try:
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream.close()
            super().close()
            raise map_device_error(e) from e

        log_event({
            "event_type": "AUDIO_OUTPUT_OPENED",
            "device": device,
            "requested_rate": sample_rate,
            "sample_rate": rate,
            "block_frames": block_frames,
        })

    @staticmethod
    def _resolve_rate(sd: Any, device: int | str | None, rate: int, channels: int) -> int:
        try:
            sd.check_output_settings(
                device=device, samplerate=rate, channels=channels, dtype="float32"
            )
            return rate
        except (sd.PortAudioError, ValueError):
            pass

        try:
            info = sd.query_devices(device, "output")
        except (sd.PortAudioError, ValueError) as e:
            raise map_device_error(e) from e

        fallback = int(info["default_samplerate"])
        log_event({
            "event_type": "AUDIO_OUTPUT_RATE_FALLBACK",
            "device": device,
            "requested_rate": rate,
            "sample_rate": fallback,
        })
        return fallback

    def _callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            log_event({"event_type": "AUDIO_OUTPUT_STATUS", "status": str(status)})
        outdata[:] = self.render(frames)

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._stream.stop()
            self._stream.close()
        finally:
            super().close()
            log_event({"event_type": "AUDIO_OUTPUT_CLOSED"})


def device_context_factory(
    *,
    device: int | str | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> ContextFactory:
    """Build a ContextFactory that opens DeviceAudioContext instances."""
    def factory(sample_rate: int) -> DeviceAudioContext:
        return DeviceAudioContext(sample_rate, device=device, loop=loop)
    return factory


# ------------------------------------------------------------------
# Input
# ------------------------------------------------------------------

class SoundDeviceMicrophone(MicrophoneSource):
    """Mono float32 microphone stream with fixed block size."""

    def __init__(self, *, device: int | str | None = None) -> None:
        self._device = device
        self._stream: Any = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(
        self,
        *,
        sample_rate: int,
        channels: int,
        block_samples: int,
        callback: BlockCallback,
    ) -> None:
        if self._stream is not None:
            raise DeviceUnavailable("microphone stream already open")

        sd = _sounddevice()

        def _on_block(indata: Any, frames: int, time_info: Any, status: Any) -> None:
            if status:
                log_event({"event_type": "AUDIO_INPUT_STATUS", "status": str(status)})
            callback(indata[:, 0].copy())

        try:
            sd.check_input_settings(
                device=self._device,
                samplerate=sample_rate,
                channels=channels,
                dtype="float32",
            )
            stream = sd.InputStream(
                samplerate=sample_rate,
                channels=channels,
                dtype="float32",
                blocksize=block_samples,
                device=self._device,
                callback=_on_block,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise map_device_error(e) from e

        try:
            stream.start()
        except sd.PortAudioError as e:
            stream.close()
            raise map_device_error(e) from e

        self._stream = stream
        log_event({
            "event_type": "AUDIO_INPUT_OPENED",
            "device": self._device,
            "sample_rate": sample_rate,
            "block_samples": block_samples,
        })

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
            log_event({"event_type": "AUDIO_INPUT_CLOSED", "device": self._device})
