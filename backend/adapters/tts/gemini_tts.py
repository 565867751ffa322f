"""
Gemini speech synthesis adapter.

Turns text into one base64 PCM16 clip (24 kHz mono), the format the
playback engine loads. No chunking; the whole text is one request.
"""

from __future__ import annotations

from google import genai
from google.genai import types

from adapters.errors import EmptyResponse, RemoteServiceError
from audio.pcm import encode_base64
from observability.logger import log_event
from observability.metrics import timed


class GeminiSpeechSynthesizer:
    """Single-shot text-to-speech with a prebuilt voice."""

    def __init__(self, *, client: genai.Client, model: str, voice: str) -> None:
        self._client = client
        self._model = model
        self._voice = voice

    async def synthesize(self, text: str) -> str:
        """
        Synthesize `text` and return base64 PCM16.

        Raises:
            RemoteServiceError: the request failed.
            EmptyResponse: the model returned no audio.
        """
        config = types.GenerateContentConfig(
            response_modalities=[types.Modality.AUDIO],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self._voice)
                )
            ),
        )

        with timed("gemini_tts", component="gemini_tts", details={"chars": len(text)}):
            try:
                response = await self._client.aio.models.generate_content(
                    model=self._model,
                    contents=text,
                    config=config,
                )
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "GEMINI_TTS_FAILED",
                    "exception": type(e).__name__,
                    "message": str(e),
                })
                raise RemoteServiceError("speech: request failed") from e

        audio = _first_inline_audio(response)
        if not audio:
            raise EmptyResponse("speech: no audio data received")

        log_event({
            "event_type": "GEMINI_TTS_COMPLETE",
            "voice": self._voice,
            "audio_bytes": len(audio),
        })
        return encode_base64(audio)


def _first_inline_audio(response: types.GenerateContentResponse) -> bytes | None:
    for candidate in response.candidates or []:
        content = candidate.content
        for part in (content.parts if content is not None else None) or []:
            if part.inline_data is not None and part.inline_data.data:
                return part.inline_data.data
    return None
