"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No audio format constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_device(name: str) -> int | str | None:
    """Device index ("3"), name substring ("USB"), or None for the default."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    return int(raw) if raw.isdigit() else raw


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and stored on app.state.config.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Gemini
    # ------------------------------------------------------------------

    gemini_api_key: str | None
    gemini_text_model: str
    gemini_tts_model: str
    gemini_live_model: str
    gemini_voice: str

    # Language for summaries, notes and the live assistant
    assistant_language: str

    # ------------------------------------------------------------------
    # Audio devices
    # ------------------------------------------------------------------

    audio_output_device: int | str | None
    audio_input_device: int | str | None

    # ------------------------------------------------------------------
    # Live session
    # ------------------------------------------------------------------

    live_stop_scheduled_on_interrupt: bool

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """Load configuration from environment variables."""
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            gemini_api_key=os.environ.get("GEMINI_API_KEY"),
            gemini_text_model=os.environ.get("GEMINI_TEXT_MODEL", "gemini-2.5-flash"),
            gemini_tts_model=os.environ.get("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts"),
            gemini_live_model=os.environ.get(
                "GEMINI_LIVE_MODEL", "gemini-2.5-flash-native-audio-preview-09-2025"
            ),
            gemini_voice=os.environ.get("GEMINI_VOICE", "Kore"),
            assistant_language=os.environ.get("ASSISTANT_LANGUAGE", "Arabic"),

            audio_output_device=_env_device("AUDIO_OUTPUT_DEVICE"),
            audio_input_device=_env_device("AUDIO_INPUT_DEVICE"),

            live_stop_scheduled_on_interrupt=_env_flag("LIVE_STOP_SCHEDULED_ON_INTERRUPT", False),

            enable_json_logs=_env_flag("ENABLE_JSON_LOGS", True),
        )
