"""
Prompt templates for the Gemini text, document and live adapters.

Versioned by name. Templates take the assistant language so the same
prompts serve any UI language.
"""

from __future__ import annotations

from enum import Enum


class SummaryKind(str, Enum):
    """Summary length / shape requested by the user."""

    SHORT = "short"
    MEDIUM = "medium"
    DETAILED = "detailed"
    POINTS = "points"


_SUMMARY_INSTRUCTIONS_V1: dict[SummaryKind, str] = {
    SummaryKind.SHORT: (
        "Summarize the following text briefly. Give the gist in one short, "
        "clear paragraph."
    ),
    SummaryKind.MEDIUM: (
        "Summarize the following text at medium length. Cover the essential "
        "points clearly in at most two paragraphs."
    ),
    SummaryKind.DETAILED: (
        "Summarize the following text in detail. Explain the main ideas and "
        "expand on the important details so the reader fully understands it."
    ),
    SummaryKind.POINTS: (
        "Summarize the text as a bulleted list of all its main points. Make "
        "sure every essential aspect is covered directly."
    ),
}


def summary_instruction(kind: SummaryKind, language: str) -> str:
    return f"{_SUMMARY_INSTRUCTIONS_V1[kind]} Write the summary in {language}."


def summary_contents(text: str) -> str:
    return f"Text to summarize:\n\n{text}"


def translation_instruction(language: str) -> str:
    return (
        f"You are an expert translator. Translate the provided text into {language}. "
        "Respond with ONLY the translated text: no introduction, no explanation, "
        "nothing else."
    )


def flashcards_prompt(text: str) -> str:
    return (
        "Based on the following text, generate 5-8 question-and-answer pairs "
        "suitable for flashcards. The questions should test the key concepts.\n"
        f"Text:\n---\n{text}\n---"
    )


def pronunciation_prompt(text: str, language: str) -> str:
    return (
        "Analyze the following text and identify complex, technical or difficult "
        "words. For each word provide:\n"
        "1. The word itself.\n"
        "2. A pronunciation guide. For Arabic words use full diacritics; for other "
        "languages use simplified phonetic spelling (e.g. \"Schedule\" -> \"SKEH-jool\").\n"
        f"3. A very brief note or meaning in {language}.\n\n"
        f"Text to analyze:\n---\n{text}\n---"
    )


def insights_prompt(text: str, language: str) -> str:
    return (
        "Extract the 5 to 7 most important key insights, facts or takeaways from "
        "the text below. Return them as a JSON list of strings. Keep them concise "
        f"and actionable.\nLanguage: {language}.\n\nText:\n---\n{text}\n---"
    )


def question_prompt(text: str, question: str, language: str) -> str:
    return (
        "You are a helpful assistant that helps users understand the provided text.\n"
        "Answer the user's question based ONLY on the text below. If the answer is "
        "not in the text, politely say that the information is not mentioned.\n"
        f"Keep the answer concise and helpful. Language: {language}.\n\n"
        f"Source text:\n---\n{text}\n---\n\nUser question: {question}"
    )


IMAGE_EXTRACTION_PROMPT_V1: str = (
    "Extract all text in this image. Reply with the extracted text only, "
    "without any introduction or extra remarks."
)

PDF_EXTRACTION_PROMPT_V1: str = (
    "Extract the full text of this document in reading order. Reply with the "
    "extracted text only, without any introduction or extra remarks."
)


def live_instruction(context: str, language: str) -> str:
    return (
        f"You are a helpful and friendly AI assistant. You speak {language} fluently.\n"
        f"Context provided by the user: {context}\n"
        "Keep answers concise and conversational."
    )
