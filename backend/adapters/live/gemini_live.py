"""
Gemini Live implementation of LiveChannel.

- Audio-only responses with a prebuilt voice
- System instruction built from the user's context text
- Outbound chunks sent as realtime input blobs (PCM16 16 kHz)
- Inbound server content flattened into protocol.live_messages types
"""

from __future__ import annotations

import contextlib
from typing import Any, AsyncIterator

from google import genai
from google.genai import types
from websockets.exceptions import ConnectionClosedOK

from adapters.live.base import LiveChannel
from adapters.llm.prompts import live_instruction
from audio.errors import RemoteChannelError
from audio.frames import AudioChunk
from audio.pcm import decode_base64
from constants import LIVE_DEFAULT_CONTEXT
from observability.logger import log_event
from protocol.live_messages import InboundMessage, messages_from_server_content


class GeminiLiveChannel(LiveChannel):
    """One Gemini Live connection. Not reusable after close()."""

    def __init__(
        self,
        *,
        client: genai.Client,
        model: str,
        voice: str,
        language: str,
        context: str | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._voice = voice
        self._instruction = live_instruction(context or LIVE_DEFAULT_CONTEXT, language)

        self._stack: contextlib.AsyncExitStack | None = None
        self._session: Any = None
        self._closed = False

    def _connect_config(self) -> types.LiveConnectConfig:
        return types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self._voice)
                )
            ),
            system_instruction=types.Content(parts=[types.Part(text=self._instruction)]),
        )

    async def connect(self) -> None:
        if self._session is not None or self._closed:
            raise RemoteChannelError("live channel already used")

        stack = contextlib.AsyncExitStack()
        try:
            self._session = await stack.enter_async_context(
                self._client.aio.live.connect(model=self._model, config=self._connect_config())
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            await stack.aclose()
            raise RemoteChannelError(f"live connect failed: {e}") from e

        if self._closed:
            self._session = None
            await stack.aclose()
            raise RemoteChannelError("live channel closed during connect")

        self._stack = stack
        log_event({"event_type": "GEMINI_LIVE_CONNECTED", "model": self._model, "voice": self._voice})

    async def send_audio(self, chunk: AudioChunk) -> None:
        session = self._require_session()
        try:
            await session.send_realtime_input(
                audio=types.Blob(data=decode_base64(chunk.data), mime_type=chunk.mime_type)
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise RemoteChannelError(f"live send failed: {e}") from e

    async def receive(self) -> AsyncIterator[InboundMessage]:
        session = self._require_session()
        try:
            # session.receive() ends after each turn; keep listening until closed
            while not self._closed:
                async for response in session.receive():
                    for message in messages_from_server_content(response.server_content):
                        yield message
        except ConnectionClosedOK:
            log_event({"event_type": "GEMINI_LIVE_REMOTE_CLOSED"})
        except Exception as e:  # pylint: disable=broad-exception-caught
            if self._closed:
                return
            raise RemoteChannelError(f"live receive failed: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        stack, self._stack = self._stack, None
        self._session = None
        if stack is None:
            return
        try:
            await stack.aclose()
        finally:
            log_event({"event_type": "GEMINI_LIVE_CLOSED"})

    def _require_session(self) -> Any:
        if self._session is None:
            raise RemoteChannelError("live channel is not connected")
        return self._session
