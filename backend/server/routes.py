"""
Route registration for the audio API.

Responsibilities:
- Define HTTP endpoints
- Wire the playback engine and the live session to request handlers
- Pull dependencies from app.state

Errors from the audio and remote-service taxonomies are turned into
responses by the handlers registered in server.app.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from adapters.llm.prompts import SummaryKind
from audio.player import PCMAudioPlayer
from observability.logger import log_event
from session.live_session import LiveSession
from session.status import LiveStatus


# ------------------------------------------------------------------
# Request bodies
# ------------------------------------------------------------------

class TextBody(BaseModel):
    text: str = Field(min_length=1)


class SummarizeBody(TextBody):
    kind: SummaryKind = SummaryKind.MEDIUM


class TranslateBody(TextBody):
    language: str = Field(min_length=1)


class AskBody(TextBody):
    question: str = Field(min_length=1)


class SeekBody(BaseModel):
    time: float


class VolumeBody(BaseModel):
    volume: float


class LiveStartBody(BaseModel):
    context: str | None = None


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Text tools
    # ------------------------------------------------------------------

    @app.post("/text/summarize")
    async def summarize(body: SummarizeBody) -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        summary = await app.state.text_service.summarize(body.text, body.kind)
        return {"summary": summary}

    @app.post("/text/translate")
    async def translate(body: TranslateBody) -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        translation = await app.state.text_service.translate(body.text, body.language)
        return {"translation": translation}

    @app.post("/text/flashcards")
    async def flashcards(body: TextBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        cards = await app.state.text_service.flashcards(body.text)
        return {"flashcards": [{"question": c.question, "answer": c.answer} for c in cards]}

    @app.post("/text/pronunciation")
    async def pronunciation(body: TextBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        entries = await app.state.text_service.pronunciation_guide(body.text)
        return {
            "entries": [
                {"word": e.word, "pronunciation": e.pronunciation, "note": e.note}
                for e in entries
            ]
        }

    @app.post("/text/insights")
    async def insights(body: TextBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return {"insights": await app.state.text_service.key_insights(body.text)}

    @app.post("/text/ask")
    async def ask(body: AskBody) -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        answer = await app.state.text_service.ask(body.text, body.question)
        return {"answer": answer}

    @app.post("/documents/extract")
    async def extract_document(request: Request) -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        data = await request.body()
        mime_type = request.headers.get("content-type", "")
        text = await app.state.documents.extract(data, mime_type)
        return {"text": text}

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------

    def _player() -> PCMAudioPlayer:
        return app.state.player

    @app.post("/speech")
    async def speech(body: TextBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        audio_b64 = await app.state.speech.synthesize(body.text)
        await _player().load(audio_b64)
        return _player().snapshot()

    @app.get("/playback")
    async def playback_status() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return _player().snapshot()

    @app.post("/playback/play")
    async def playback_play() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        player = _player()

        def on_ended() -> None:
            log_event({"event_type": "HTTP_PLAYBACK_FINISHED", "player_id": player.player_id})

        player.play(on_ended=on_ended)
        return player.snapshot()

    @app.post("/playback/pause")
    async def playback_pause() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        _player().pause()
        return _player().snapshot()

    @app.post("/playback/stop")
    async def playback_stop() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        _player().stop()
        return _player().snapshot()

    @app.post("/playback/seek")
    async def playback_seek(body: SeekBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        _player().seek(body.time)
        return _player().snapshot()

    @app.post("/playback/volume")
    async def playback_volume(body: VolumeBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        _player().set_volume(body.volume)
        return _player().snapshot()

    # ------------------------------------------------------------------
    # Live conversation
    # ------------------------------------------------------------------

    @app.get("/live")
    async def live_status() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        session: LiveSession | None = app.state.live_session
        if session is None:
            return {"status": LiveStatus.IDLE.value}
        return session.snapshot()

    @app.post("/live/start")
    async def live_start(body: LiveStartBody) -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        async with app.state.live_lock:
            previous: LiveSession | None = app.state.live_session
            if previous is not None and previous.status in (LiveStatus.CONNECTING, LiveStatus.ACTIVE):
                raise HTTPException(status_code=409, detail="live session already running")

            session = LiveSession(
                channel=app.state.live_channel_factory(body.context),
                microphone=app.state.microphone_factory(),
                context_factory=app.state.context_factory,
                stop_scheduled_on_interrupt=app.state.config.live_stop_scheduled_on_interrupt,
            )
            app.state.live_session = session
            await session.open()
            return session.snapshot()

    @app.post("/live/stop")
    async def live_stop() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        async with app.state.live_lock:
            session: LiveSession | None = app.state.live_session
            if session is None:
                raise HTTPException(status_code=404, detail="no live session")
            await session.close()
            return session.snapshot()
