"""
Audio error taxonomy.

Codec and playback errors are raised synchronously to the caller.
Device errors are terminal for a live session (no automatic retry).
"""

from __future__ import annotations


class AudioError(Exception):
    """Base class for audio subsystem errors."""


# -------------------------
# Codec
# -------------------------

class DecodeError(AudioError):
    """
    Raised when a base64 payload cannot be decoded.

    Covers characters outside the standard alphabet and wrong padding.
    The payload must not be partially played.
    """


class MalformedBufferError(AudioError):
    """
    Raised when a PCM16 buffer is not aligned to whole sample frames.

    A buffer whose byte length is not a multiple of 2 * channels is rejected
    rather than truncated.
    """


# -------------------------
# Devices
# -------------------------

class DeviceError(AudioError):
    """Base class for audio device acquisition failures."""


class PermissionDenied(DeviceError):
    """Raised when the host refuses microphone access."""


class DeviceUnavailable(DeviceError):
    """Raised when no usable audio device exists or it cannot be opened."""


# -------------------------
# Live transport
# -------------------------

class RemoteChannelError(AudioError):
    """Raised when the live audio channel fails to connect, send or receive."""
