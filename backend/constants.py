"""
AUDIO CONSTANTS
---------------
Single source of truth for audio format and timing values.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# PCM format (signed 16-bit little-endian, mono)
# =============================================================================

PCM_SAMPLE_WIDTH_BYTES: Final[int] = 2
PCM_CHANNELS: Final[int] = 1

# Divisor used when decoding int16 -> float (covers the full negative range)
PCM_DECODE_SCALE: Final[float] = 32768.0

# Encoding is asymmetric so that exactly 1.0 does not overflow int16
PCM_ENCODE_SCALE_POSITIVE: Final[float] = 32767.0
PCM_ENCODE_SCALE_NEGATIVE: Final[float] = 32768.0

# =============================================================================
# Playback (TTS and live model audio)
# =============================================================================

PLAYBACK_SAMPLE_RATE_HZ: Final[int] = 24_000
PLAYBACK_CHANNELS: Final[int] = PCM_CHANNELS

DEFAULT_VOLUME: Final[float] = 1.0

# sounddevice output block size (frames per callback)
OUTPUT_BLOCK_FRAMES: Final[int] = 512

# =============================================================================
# Capture (microphone -> live channel)
# =============================================================================

CAPTURE_SAMPLE_RATE_HZ: Final[int] = 16_000
CAPTURE_CHANNELS: Final[int] = PCM_CHANNELS
CAPTURE_FRAME_SAMPLES: Final[int] = 4096

# Mean absolute amplitude above which the user is shown as speaking.
# Visualization only; never gates transmission.
SPEAKING_LEVEL_THRESHOLD: Final[float] = 0.05

CAPTURE_MIME_TYPE: Final[str] = f"audio/pcm;rate={CAPTURE_SAMPLE_RATE_HZ}"

# =============================================================================
# Live session
# =============================================================================

# Cursor value meaning "schedule immediately"
LIVE_CURSOR_RESET: Final[float] = 0.0

LIVE_DEFAULT_CONTEXT: Final[str] = "No context provided, just a general chat."

# Outbound microphone audio held while the channel is slow; oldest dropped first
LIVE_OUTBOUND_QUEUE_MAX_S: Final[float] = 2.0

# =============================================================================
# Helper Functions
# =============================================================================

def samples_to_seconds(num_samples: int, sample_rate_hz: int) -> float:
    """
    Convert a sample count to a duration in seconds.

    Edge cases:
    - Non-positive input returns 0.0.
    """
    if num_samples <= 0 or sample_rate_hz <= 0:
        return 0.0
    return num_samples / sample_rate_hz


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))
