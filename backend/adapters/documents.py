"""
Document text extraction.

- text/*           decoded locally as UTF-8
- image/*, PDF     sent to Gemini as an inline part with an extraction prompt

Anything else is rejected with UnsupportedFileType.
"""

from __future__ import annotations

from google import genai
from google.genai import types

from adapters.errors import ExtractionFailed, RemoteServiceError, UnsupportedFileType
from adapters.llm.prompts import IMAGE_EXTRACTION_PROMPT_V1, PDF_EXTRACTION_PROMPT_V1
from observability.logger import log_event
from observability.metrics import timed


PDF_MIME_TYPE = "application/pdf"


class DocumentExtractor:
    """Extract plain text from an uploaded file."""

    def __init__(self, *, client: genai.Client, model: str) -> None:
        self._client = client
        self._model = model

    async def extract(self, data: bytes, mime_type: str) -> str:
        """
        Raises:
            UnsupportedFileType, ExtractionFailed, RemoteServiceError
        """
        mime_type = (mime_type or "").split(";", 1)[0].strip().lower()

        if not data:
            raise ExtractionFailed("document is empty")

        if mime_type.startswith("text/"):
            try:
                text = data.decode("utf-8").strip()
            except UnicodeDecodeError as e:
                raise ExtractionFailed("text document is not valid UTF-8") from e
        elif mime_type.startswith("image/"):
            text = await self._extract_remote(data, mime_type, IMAGE_EXTRACTION_PROMPT_V1)
        elif mime_type == PDF_MIME_TYPE:
            text = await self._extract_remote(data, mime_type, PDF_EXTRACTION_PROMPT_V1)
        else:
            raise UnsupportedFileType(f"unsupported document type: {mime_type or 'unknown'}")

        if not text:
            raise ExtractionFailed("no text found in document")

        log_event({
            "event_type": "DOCUMENT_EXTRACTED",
            "mime_type": mime_type,
            "input_bytes": len(data),
            "chars": len(text),
        })
        return text

    async def _extract_remote(self, data: bytes, mime_type: str, prompt: str) -> str:
        with timed("document_extract", component="documents", details={"mime_type": mime_type}):
            try:
                response = await self._client.aio.models.generate_content(
                    model=self._model,
                    contents=[types.Part.from_bytes(data=data, mime_type=mime_type), prompt],
                )
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "DOCUMENT_EXTRACT_FAILED",
                    "mime_type": mime_type,
                    "exception": type(e).__name__,
                    "message": str(e),
                })
                raise RemoteServiceError("document extraction request failed") from e

        text = (response.text or "").strip()
        if not text:
            raise ExtractionFailed("model returned no text for the document")
        return text
