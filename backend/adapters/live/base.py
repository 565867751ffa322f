"""
Live channel adapter contract.

This module defines the *interface only*. No scheduling, no audio decoding,
no retries.

Key invariants:
- The channel carries base64 PCM16 both ways and never touches devices.
- The adapter does not interpret interruptions; it reports them as
  Interrupted messages and the session decides what to do.
- Failures surface as RemoteChannelError. The adapter MUST NOT retry or
  reconnect internally.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from audio.frames import AudioChunk
from protocol.live_messages import InboundMessage


class LiveChannel(ABC):
    """
    Abstract bidirectional conversation channel.

    Lifecycle:
        connect() -> send_audio()* / receive() -> close()

    Implementations are responsible for:
    - Opening the remote session with the configured voice and context
    - Forwarding outbound chunks in the order they are sent
    - Translating server messages into protocol.live_messages types

    Non-responsibilities:
    - No playback scheduling
    - No microphone access
    - No status tracking (owned by LiveSession)
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the remote session.

        Raises:
            RemoteChannelError: connection or authentication failed.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_audio(self, chunk: AudioChunk) -> None:
        """
        Send one microphone chunk.

        Contract:
        - Chunks are delivered in call order.
        - Raises RemoteChannelError if the channel is broken.
        """
        raise NotImplementedError

    @abstractmethod
    def receive(self) -> AsyncIterator[InboundMessage]:
        """
        Iterate inbound messages until the remote side closes.

        Contract:
        - A clean remote close ends the iteration.
        - Any other failure raises RemoteChannelError.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Close the remote session.

        Contract:
        - Idempotent.
        - Ends any in-progress receive() iteration.
        """
        raise NotImplementedError
