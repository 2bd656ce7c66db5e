"""
Assistant surface container.

One mounted surface == one host UI WebSocket:
- Owns the Session record, Message Log, Permission Gate, SessionController
  and ModeCoordinator of that connection
- Owns the outbound queue the WebSocket sender drains (JSON dicts and binary
  agent audio frames, in order)
- Builds the snapshot the host UI renders
- NOT a state machine
- Contains no coordination logic
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Union

from adapters.channel.base import ChannelFactory, ConversationChannel
from adapters.channel.elevenlabs_convai import ElevenLabsConvAIChannel
from audio.pcm import FrameAligner
from constants import (
    AUDIO_CHANNELS,
    AUDIO_FRAME_MS,
    AUDIO_SAMPLE_RATE_HZ,
    SEQ_NUM_START,
)
from coordinator.runtime import ModeCoordinator
from i18n.language import Language, parse_language
from observability.logger import log_event, now_ms
from protocol.binary import encode_s2c_frame, next_seq
from session.controller import SessionController
from session.notices import error_notice, is_retriable
from session.permission import ClientMicrophonePermission, PermissionCapability, PermissionGate
from session.session import Session
from session.status import ErrorReason, SessionStatus
from transcript.message_log import MessageLog
from transcript.suggestions import resolve_prompts, should_show

if TYPE_CHECKING:
    from config import AppConfig


Outbound = Union[dict[str, Any], bytes]


def convai_channel_factory(config: AppConfig, session_id: str) -> ChannelFactory:
    """Fresh ElevenLabs ConvAI channel per session start."""
    def factory() -> ConversationChannel:
        return ElevenLabsConvAIChannel(
            session_id=session_id,
            base_url=config.convai_base_url,
            api_key=config.elevenlabs_api_key,
        )
    return factory


class AssistantSurface:
    """Mutable runtime container for a single mounted assistant surface."""

    def __init__(
        self,
        *,
        session_id: str,
        config: AppConfig,
        channel_factory: ChannelFactory | None = None,
        permission_capability: PermissionCapability | None = None,
        language: Language | None = None,
    ) -> None:
        self.session_id = session_id
        self.created_at = time.time()
        self.language = language or parse_language(config.default_language)

        self.outbound: asyncio.Queue[Outbound] = asyncio.Queue()

        # Agent audio framing (reset whenever the generation changes)
        self._audio_aligner = FrameAligner()
        self._audio_generation = 0
        self._audio_seq = SEQ_NUM_START

        self.session = Session(session_id=session_id)
        self.message_log = MessageLog(session_id=session_id, on_change=self.push_snapshot)

        # The browser owns getUserMedia unless a capability is injected.
        self.mic_permission = ClientMicrophonePermission(
            send_control=self.enqueue_json,
            timeout_s=config.permission_reply_timeout_s,
            session_id=session_id,
        )
        self.permission_gate = PermissionGate(
            permission_capability or self.mic_permission,
            session_id=session_id,
        )

        self.controller = SessionController(
            session=self.session,
            message_log=self.message_log,
            permission_gate=self.permission_gate,
            channel_factory=channel_factory or convai_channel_factory(config, session_id),
            agent_id=config.agent_id,
            connect_timeout_s=config.connect_timeout_s,
            disconnect_timeout_s=config.disconnect_timeout_s,
            on_change=self.push_snapshot,
            on_error=self._on_session_error,
            on_agent_audio=self._on_agent_audio,
        )
        self.coordinator = ModeCoordinator(
            controller=self.controller,
            message_log=self.message_log,
            on_change=self.push_snapshot,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self) -> None:
        self.coordinator.start()

    async def unmount(self) -> None:
        """Release everything the surface owns. Safe to call once per mount."""
        self.mic_permission.cancel()
        await self.coordinator.shutdown()
        self._audio_aligner.clear_buffer()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def enqueue_json(self, msg: dict[str, Any]) -> None:
        self.outbound.put_nowait(msg)

    def push_snapshot(self) -> None:
        self.enqueue_json({
            "type": "SNAPSHOT",
            "ts_ms": now_ms(),
            **self.snapshot(),
        })

    def session_init(self) -> dict[str, Any]:
        return {
            "type": "SESSION_INIT",
            "session_id": self.session_id,
            "language": self.language.value,
            "audio_format": {
                "encoding": "pcm_s16le",
                "sample_rate_hz": AUDIO_SAMPLE_RATE_HZ,
                "channels": AUDIO_CHANNELS,
                "frame_ms": AUDIO_FRAME_MS,
            },
        }

    def snapshot(self) -> dict[str, Any]:
        """What the host UI renders. Derived on demand, never stored."""
        s = self.session
        messages = self.message_log.messages()
        flags = self.coordinator.state.flags
        show = should_show(s.mode, messages, flags)

        return {
            "mode": s.mode.value,
            "status": s.status.value,
            "is_connecting": s.status is SessionStatus.CONNECTING,
            "is_speaking": s.is_speaking,
            "volume": s.volume,
            "messages": [m.to_dict() for m in messages],
            "show_suggestions": show,
            "suggestions": list(resolve_prompts(self.language)) if show else [],
            "chat_ended": flags.chat_ended,
            "last_error": s.last_error.value if s.last_error is not None else None,
        }

    def set_language(self, language: Language) -> None:
        if language is self.language:
            return
        self.language = language
        self.push_snapshot()

    # ------------------------------------------------------------------
    # Controller callbacks
    # ------------------------------------------------------------------

    def _on_session_error(self, reason: ErrorReason) -> None:
        self.enqueue_json({
            "type": "NOTICE",
            "ts_ms": now_ms(),
            "kind": reason.value,
            "message": error_notice(reason, self.session.mode, self.language),
            "retriable": is_retriable(reason),
        })

    def _on_agent_audio(self, generation: int, pcm_bytes: bytes) -> None:
        """Rechunk agent audio into 20ms frames tagged with its generation."""
        if generation != self._audio_generation:
            if self._audio_aligner.pending_bytes:
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "agent_audio_partial_dropped",
                    "session_id": self.session_id,
                    "generation": self._audio_generation,
                    "bytes": self._audio_aligner.pending_bytes,
                })
            self._audio_aligner.clear_buffer()
            self._audio_generation = generation

        for frame in self._audio_aligner.add(pcm_bytes):
            self.outbound.put_nowait(encode_s2c_frame(
                sequence_num=self._audio_seq,
                generation=generation,
                pcm_bytes=frame,
            ))
            self._audio_seq = next_seq(self._audio_seq)
