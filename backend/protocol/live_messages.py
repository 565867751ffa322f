"""
Typed messages for the live conversation channel.

Server -> client:
    serverContent.modelTurn.parts[*].inlineData  audio (base64 PCM16, 24 kHz)
    serverContent.interrupted                    remote barge-in
    serverContent.turnComplete                   end of a model turn

One server message may carry several of these at once. They are returned
in that order (audio first, then interruption, then turn completion), which
is the order the session must apply them in.

Client -> server audio is an audio.frames.AudioChunk.

Usage example:

    for message in messages_from_server_content(response.server_content):
        session.handle_message(message)

    for message in parse_server_message(json.loads(text_frame)):
        ...

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

from audio.pcm import encode_base64


# -------------------------
# Exceptions
# -------------------------

class LiveProtocolError(Exception):
    """Base class for live message errors."""


class InvalidServerMessage(LiveProtocolError):
    """
    Raised when a server message has a recognized shape but unusable content.

    For example an inline audio part whose payload is neither bytes nor a
    base64 string.
    """


# -------------------------
# Messages
# -------------------------

@dataclass(frozen=True)
class InboundAudio:
    """One chunk of model speech. `data` is base64 PCM16."""
    data: str
    mime_type: str = "audio/pcm;rate=24000"


@dataclass(frozen=True)
class Interrupted:
    """The remote side detected user speech and abandoned its turn."""


@dataclass(frozen=True)
class TurnComplete:
    """The model finished its turn."""


InboundMessage = Union[InboundAudio, Interrupted, TurnComplete]


# -------------------------
# Parsing
# -------------------------

def _field(obj: Any, name: str, wire_name: str) -> Any:
    """Read an SDK attribute (snake_case) or a JSON wire key (camelCase)."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(wire_name, obj.get(name))
    return getattr(obj, name, None)


def _audio_payload(inline_data: Any) -> str | None:
    data = _field(inline_data, "data", "data")
    if data is None:
        return None
    if isinstance(data, (bytes, bytearray)):
        return encode_base64(bytes(data)) if data else None
    if isinstance(data, str):
        return data or None
    raise InvalidServerMessage(f"unsupported inline audio payload: {type(data).__name__}")


def messages_from_server_content(server_content: Any) -> list[InboundMessage]:
    """
    Flatten one serverContent block into typed messages.

    Accepts the SDK's LiveServerContent (snake_case attributes) or the JSON
    wire object (camelCase keys). Non-audio parts (text, thoughts) are
    ignored.
    """
    if server_content is None:
        return []

    messages: list[InboundMessage] = []

    model_turn = _field(server_content, "model_turn", "modelTurn")
    for part in _field(model_turn, "parts", "parts") or []:
        inline_data = _field(part, "inline_data", "inlineData")
        if inline_data is None:
            continue
        payload = _audio_payload(inline_data)
        if payload is None:
            continue
        mime_type = _field(inline_data, "mime_type", "mimeType") or InboundAudio.mime_type
        messages.append(InboundAudio(data=payload, mime_type=mime_type))

    if _field(server_content, "interrupted", "interrupted"):
        messages.append(Interrupted())

    if _field(server_content, "turn_complete", "turnComplete"):
        messages.append(TurnComplete())

    return messages


def parse_server_message(payload: Mapping[str, Any]) -> list[InboundMessage]:
    """
    Parse one decoded JSON server message.

    Messages without serverContent (setupComplete, usage metadata) yield
    nothing.

    Raises:
        InvalidServerMessage: payload is not a JSON object.
    """
    if not isinstance(payload, Mapping):
        raise InvalidServerMessage(f"server message must be an object, got {type(payload).__name__}")
    return messages_from_server_content(payload.get("serverContent"))
