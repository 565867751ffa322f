"""
Remote service error taxonomy.

Raised by the Gemini text, speech and document adapters. Each class maps to
a distinct error code at the HTTP boundary so clients can tell an outage
from a bad model answer.
"""

from __future__ import annotations


class RemoteServiceError(Exception):
    """The remote model call failed (network, auth, quota, server error)."""


class EmptyResponse(RemoteServiceError):
    """The model answered with no usable content."""


class InvalidFormat(RemoteServiceError):
    """
    The model answered, but not in the requested structure.

    Raised when a JSON response does not parse or does not match the
    expected item shape.
    """


class UnsupportedFileType(RemoteServiceError):
    """The uploaded document type cannot be extracted."""


class ExtractionFailed(RemoteServiceError):
    """The document was accepted but no text could be extracted from it."""
