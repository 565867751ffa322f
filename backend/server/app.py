"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (Gemini client, text/speech/document
  services, playback engine)
- Map the error taxonomy to HTTP responses
- Register routes

Audio devices are opened lazily: the default factories are built at
startup (they need the running loop) but touch no device until used.
sounddevice itself is only imported when a device is first opened.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from google import genai

from adapters.documents import DocumentExtractor
from adapters.errors import (
    EmptyResponse,
    ExtractionFailed,
    InvalidFormat,
    RemoteServiceError,
    UnsupportedFileType,
)
from adapters.live.base import LiveChannel
from adapters.live.gemini_live import GeminiLiveChannel
from adapters.llm.gemini_text import GeminiTextService
from adapters.tts.gemini_tts import GeminiSpeechSynthesizer
from audio.device import SoundDeviceMicrophone, device_context_factory
from audio.errors import (
    AudioError,
    DecodeError,
    DeviceUnavailable,
    MalformedBufferError,
    PermissionDenied,
    RemoteChannelError,
)
from audio.platform import ContextFactory, MicrophoneSource
from audio.player import PCMAudioPlayer
from config import AppConfig
from observability.logger import log_event

from server.routes import register_routes


# Optional[context] -> channel for one live conversation
LiveChannelFactory = Callable[[str | None], LiveChannel]
MicrophoneFactory = Callable[[], MicrophoneSource]


# exception class -> (status, error code); first match wins
_ERROR_RESPONSES: tuple[tuple[type[Exception], int, str], ...] = (
    (DecodeError, 422, "decode_error"),
    (MalformedBufferError, 422, "malformed_buffer"),
    (PermissionDenied, 403, "permission_denied"),
    (DeviceUnavailable, 503, "device_unavailable"),
    (RemoteChannelError, 502, "remote_channel_error"),
    (AudioError, 500, "audio_error"),
    (EmptyResponse, 502, "empty_response"),
    (InvalidFormat, 502, "invalid_format"),
    (UnsupportedFileType, 415, "unsupported_file_type"),
    (ExtractionFailed, 422, "extraction_failed"),
    (RemoteServiceError, 502, "remote_service_error"),
)


def error_response(exc: Exception) -> tuple[int, str]:
    """Status code and error code for an exception from the taxonomy."""
    for cls, status, code in _ERROR_RESPONSES:
        if isinstance(exc, cls):
            return status, code
    return 500, "internal_error"


def create_app(
    config: AppConfig | None = None,
    *,
    genai_client: Any | None = None,
    context_factory: ContextFactory | None = None,
    microphone_factory: MicrophoneFactory | None = None,
    live_channel_factory: LiveChannelFactory | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every external dependency can be injected; anything left as None is
    built from `config` (default: AppConfig.load_from_env()).
    """
    config = config or AppConfig.load_from_env()

    if genai_client is None:
        if not config.gemini_api_key:
            raise RuntimeError("GEMINI_API_KEY environment variable not set")
        genai_client = genai.Client(api_key=config.gemini_api_key)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        loop = asyncio.get_running_loop()
        app.state.context_factory = context_factory or _device_context_factory(config, loop)
        app.state.microphone_factory = microphone_factory or _microphone_factory(config)
        app.state.player = PCMAudioPlayer(context_factory=app.state.context_factory)
        app.state.live_session = None

        log_event({"event_type": "APP_STARTED", "env": config.env})
        try:
            yield
        finally:
            session = app.state.live_session
            if session is not None:
                await session.close()
            app.state.player.close()
            log_event({"event_type": "APP_STOPPED"})

    app = FastAPI(title="PCM Audio API", lifespan=lifespan)

    app.state.config = config
    app.state.text_service = GeminiTextService(
        client=genai_client,
        model=config.gemini_text_model,
        language=config.assistant_language,
    )
    app.state.speech = GeminiSpeechSynthesizer(
        client=genai_client,
        model=config.gemini_tts_model,
        voice=config.gemini_voice,
    )
    app.state.documents = DocumentExtractor(client=genai_client, model=config.gemini_text_model)
    app.state.live_channel_factory = live_channel_factory or _gemini_live_factory(config, genai_client)
    app.state.live_lock = asyncio.Lock()

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AudioError)
    @app.exception_handler(RemoteServiceError)
    async def _taxonomy_error(request: Request, exc: Exception) -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        status, code = error_response(exc)
        log_event({
            "event_type": "HTTP_ERROR",
            "path": request.url.path,
            "status": status,
            "error": code,
            "message": str(exc),
        })
        return JSONResponse(status_code=status, content={"error": code, "message": str(exc)})

    # Routes
    register_routes(app)

    return app


def _device_context_factory(config: AppConfig, loop: asyncio.AbstractEventLoop) -> ContextFactory:
    return device_context_factory(device=config.audio_output_device, loop=loop)


def _microphone_factory(config: AppConfig) -> MicrophoneFactory:
    return lambda: SoundDeviceMicrophone(device=config.audio_input_device)


def _gemini_live_factory(config: AppConfig, client: Any) -> LiveChannelFactory:
    def factory(context: str | None) -> LiveChannel:
        return GeminiLiveChannel(
            client=client,
            model=config.gemini_live_model,
            voice=config.gemini_voice,
            language=config.assistant_language,
            context=context,
        )
    return factory
