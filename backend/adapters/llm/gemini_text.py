"""
Gemini text generation adapter.

One request per operation, no streaming, no retries. The adapter only
builds prompts, calls the model and validates the answer's shape.

Errors:
- RemoteServiceError  the request itself failed
- EmptyResponse       the model returned no text
- InvalidFormat       a JSON answer did not parse or had the wrong shape
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from google import genai
from google.genai import types

from adapters.errors import EmptyResponse, InvalidFormat, RemoteServiceError
from adapters.llm import prompts
from adapters.llm.prompts import SummaryKind
from observability.logger import log_event
from observability.metrics import timed


@dataclass(frozen=True)
class Flashcard:
    question: str
    answer: str


@dataclass(frozen=True)
class PronunciationEntry:
    word: str
    pronunciation: str
    note: str


_FLASHCARD_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "question": types.Schema(type=types.Type.STRING, description="The question for the flashcard."),
            "answer": types.Schema(type=types.Type.STRING, description="The answer to the question."),
        },
        required=["question", "answer"],
    ),
)

_PRONUNCIATION_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "word": types.Schema(type=types.Type.STRING, description="The complex word"),
            "pronunciation": types.Schema(type=types.Type.STRING, description="Phonetic pronunciation or diacritics"),
            "note": types.Schema(type=types.Type.STRING, description="Brief meaning or note"),
        },
        required=["word", "pronunciation", "note"],
    ),
)

_INSIGHTS_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(type=types.Type.STRING),
)


class GeminiTextService:
    """
    Summaries, translation and study aids over a block of text.

    The client is injected (one genai.Client per process, built in
    server.app).
    """

    def __init__(self, *, client: genai.Client, model: str, language: str) -> None:
        self._client = client
        self._model = model
        self._language = language

    async def summarize(self, text: str, kind: SummaryKind = SummaryKind.MEDIUM) -> str:
        return await self._generate(
            "summarize",
            contents=prompts.summary_contents(text),
            config=types.GenerateContentConfig(
                system_instruction=prompts.summary_instruction(kind, self._language),
            ),
        )

    async def translate(self, text: str, language: str) -> str:
        return await self._generate(
            "translate",
            contents=text,
            config=types.GenerateContentConfig(
                system_instruction=prompts.translation_instruction(language),
            ),
        )

    async def flashcards(self, text: str) -> list[Flashcard]:
        items = await self._generate_json(
            "flashcards", prompts.flashcards_prompt(text), _FLASHCARD_SCHEMA
        )
        return [Flashcard(**_require_fields(item, ("question", "answer"))) for item in items]

    async def pronunciation_guide(self, text: str) -> list[PronunciationEntry]:
        items = await self._generate_json(
            "pronunciation",
            prompts.pronunciation_prompt(text, self._language),
            _PRONUNCIATION_SCHEMA,
        )
        return [
            PronunciationEntry(**_require_fields(item, ("word", "pronunciation", "note")))
            for item in items
        ]

    async def key_insights(self, text: str) -> list[str]:
        items = await self._generate_json(
            "insights", prompts.insights_prompt(text, self._language), _INSIGHTS_SCHEMA
        )
        if not all(isinstance(item, str) for item in items):
            raise InvalidFormat("insights: expected a list of strings")
        return items

    async def ask(self, text: str, question: str) -> str:
        return await self._generate(
            "ask",
            contents=prompts.question_prompt(text, question, self._language),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _generate(
        self,
        operation: str,
        *,
        contents: Any,
        config: types.GenerateContentConfig | None = None,
    ) -> str:
        with timed("gemini_generate", component="gemini_text", details={"operation": operation}):
            try:
                response = await self._client.aio.models.generate_content(
                    model=self._model,
                    contents=contents,
                    config=config,
                )
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "GEMINI_REQUEST_FAILED",
                    "operation": operation,
                    "exception": type(e).__name__,
                    "message": str(e),
                })
                raise RemoteServiceError(f"{operation}: request failed") from e

        text = (response.text or "").strip()
        if not text:
            log_event({"event_type": "GEMINI_EMPTY_RESPONSE", "operation": operation})
            raise EmptyResponse(f"{operation}: model returned no text")
        return text

    async def _generate_json(self, operation: str, prompt: str, schema: types.Schema) -> list[Any]:
        raw = await self._generate(
            operation,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            log_event({
                "event_type": "GEMINI_INVALID_JSON",
                "operation": operation,
                "response_len": len(raw),
            })
            raise InvalidFormat(f"{operation}: response is not valid JSON") from e

        if not isinstance(parsed, list):
            raise InvalidFormat(f"{operation}: expected a JSON list")
        return parsed


def _require_fields(item: Any, fields: tuple[str, ...]) -> dict[str, str]:
    if not isinstance(item, dict):
        raise InvalidFormat("expected a JSON object")
    missing = [f for f in fields if not isinstance(item.get(f), str)]
    if missing:
        raise InvalidFormat(f"missing or non-string fields: {', '.join(missing)}")
    return {f: item[f] for f in fields}
