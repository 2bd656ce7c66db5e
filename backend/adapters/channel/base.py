"""
Realtime conversational channel contract.

This module defines the *interface only*: no session status, no transcript,
no permission logic lives here.

Key invariants:
- A channel instance carries at most one session. The SessionController
  builds a fresh channel for every start() and never reuses a closed one.
- The channel reports inbound traffic through the ChannelHandlers passed to
  start_session(); it never calls the controller or coordinator directly.
- Handlers are plain synchronous callables, invoked on the event loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable


class ChannelError(Exception):
    """Base class for channel failures."""


class ChannelConnectError(ChannelError):
    """The channel could not be opened (network, auth, handshake)."""


class ChannelClosedError(ChannelError):
    """An operation needed a live channel but it was already closed."""


class ChannelStatus(str, Enum):
    """Externally observable channel status."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


@dataclass(frozen=True)
class ChannelHandlers:
    """
    Inbound event sinks for one session.

    on_message:    (role, message) where role is "user" or "agent"
    on_error:      human-readable reason; the channel may still be usable
    on_speaking:   agent speaking indicator changed
    on_audio:      PCM16 16kHz mono agent audio, arbitrary length
    on_disconnect: the channel closed without end_session() being called
    """
    on_message: Callable[[str, str], None]
    on_error: Callable[[str], None]
    on_speaking: Callable[[bool], None]
    on_audio: Callable[[bytes], None]
    on_disconnect: Callable[[str | None], None]


class ConversationChannel(ABC):
    """
    Abstract realtime channel to an external conversational agent.

    Implementations are responsible for:
    - Opening/closing the transport
    - Encoding outbound text/audio
    - Decoding inbound events into handler calls
    - Applying output volume

    Non-responsibilities:
    - No retries or backoff
    - No status transitions of the owning session
    """

    @abstractmethod
    async def start_session(
        self,
        *,
        agent_id: str,
        transport: str,
        handlers: ChannelHandlers,
    ) -> None:
        """
        Open the channel and complete the handshake.

        Raises:
            ChannelConnectError if the channel cannot be opened.
        """
        raise NotImplementedError

    @abstractmethod
    async def end_session(self) -> None:
        """
        Gracefully close the channel.

        Must be idempotent. After it returns, no handler is invoked again.
        """
        raise NotImplementedError

    @abstractmethod
    def send_user_message(self, text: str) -> None:
        """Send a typed user message. Fire-and-forget."""
        raise NotImplementedError

    @abstractmethod
    def send_user_audio(self, pcm_bytes: bytes) -> None:
        """Send one chunk of PCM16 16kHz mono mic audio. Fire-and-forget."""
        raise NotImplementedError

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Set agent output volume in [0, 1]."""
        raise NotImplementedError

    @property
    @abstractmethod
    def status(self) -> ChannelStatus:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_speaking(self) -> bool:
        raise NotImplementedError


ChannelFactory = Callable[[], ConversationChannel]
