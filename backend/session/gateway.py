"""
Session gateway.

Responsibilities:
- Owns the AssistantSurface lifecycle (mount on connect, unmount on
  disconnect)
- Routes inbound JSON control messages -> coordinator actions
- Delivers MIC_PERMISSION replies and language changes directly to the
  surface (never queued behind a pending action)
- Routes inbound binary mic frames -> SessionController
- Detects mic sequence gaps and logs them

NOT responsible for:
- Any state machine logic
- Executing commands
- Sending on the WebSocket (routes drain the surface outbound queue)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from uuid import uuid4

from adapters.channel.base import ChannelFactory
from coordinator.actions import (
    Action,
    ActionType,
    EndChat,
    PickSuggestion,
    SendText,
    StartNewChat,
    SwitchToText,
    SwitchToVoice,
    ToggleVoice,
)
from i18n.language import parse_language
from observability.logger import log_event, now_ms
from protocol.binary import (
    BinaryProtocolError,
    check_sequence_gap,
    decode_c2s_frame,
)
from session.permission import PermissionCapability
from session.surface import AssistantSurface
from transcript.suggestions import prompt_at

if TYPE_CHECKING:
    from config import AppConfig


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# Payload-free actions, keyed by host message type.
_SIMPLE_ACTIONS: dict[str, tuple[type[Action], ActionType]] = {
    "TOGGLE_VOICE": (ToggleVoice, ActionType.TOGGLE_VOICE),
    "SWITCH_TO_TEXT": (SwitchToText, ActionType.SWITCH_TO_TEXT),
    "SWITCH_TO_VOICE": (SwitchToVoice, ActionType.SWITCH_TO_VOICE),
    "END_CHAT": (EndChat, ActionType.END_CHAT),
    "START_NEW_CHAT": (StartNewChat, ActionType.START_NEW_CHAT),
}


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to the client immediately, ahead of anything
        the surface has queued.
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """One gateway == one host UI connection == one assistant surface."""

    def __init__(
        self,
        *,
        config: AppConfig,
        channel_factory: ChannelFactory | None = None,
        permission_capability: PermissionCapability | None = None,
    ) -> None:
        self._config = config
        self._channel_factory = channel_factory
        self._permission_capability = permission_capability

        self.surface: AssistantSurface | None = None
        self._last_ingest_seq: int | None = None

    async def on_ws_connect(self, *, language: str | None = None) -> GatewayResult:
        """Called when the host UI WebSocket is accepted (surface mounted)."""
        session_id = _new_session_id()

        self.surface = AssistantSurface(
            session_id=session_id,
            config=self._config,
            channel_factory=self._channel_factory,
            permission_capability=self._permission_capability,
            language=parse_language(language, parse_language(self._config.default_language)),
        )
        self.surface.mount()
        self._last_ingest_seq = None

        log_event({
            "ts_ms": now_ms(),
            "event_type": "SURFACE_MOUNTED",
            **self.surface.session.log_context(),
            "language": self.surface.language.value,
        })

        return GatewayResult(outbound_json=(
            self.surface.session_init(),
            {"type": "SNAPSHOT", "ts_ms": now_ms(), **self.surface.snapshot()},
        ))

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """Called when the WebSocket disconnects (surface unmounted)."""
        if self.surface is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return GatewayResult()

        surface = self.surface
        self.surface = None
        await surface.unmount()

        log_event({
            "ts_ms": now_ms(),
            "event_type": "SURFACE_UNMOUNTED",
            **surface.session.log_context(),
            "reason": reason,
        })
        return GatewayResult()

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route inbound JSON to coordinator actions or direct surface calls."""
        surface = self.surface
        if surface is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": surface.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        if not isinstance(data, dict):
            log_event({
                "ts_ms": now_ms(),
                "event_type": "JSON_NOT_AN_OBJECT",
                "session_id": surface.session_id,
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        msg_type = data.get("type")
        ts_ms = data.get("ts_ms")
        if not isinstance(ts_ms, int):
            ts_ms = now_ms()

        if msg_type == "MIC_PERMISSION":
            surface.mic_permission.resolve(data.get("result"))
            return GatewayResult()

        if msg_type == "SET_LANGUAGE":
            surface.set_language(parse_language(data.get("language"), surface.language))
            return GatewayResult()

        action = self._to_action(surface, msg_type, data, ts_ms)
        if action is None:
            return GatewayResult()

        surface.coordinator.dispatch(action)
        return GatewayResult()

    async def on_binary_message(self, payload: bytes) -> GatewayResult:
        """
        Handle inbound binary mic audio frames.

        - Decode + validate
        - Detect sequence gaps
        - Forward to the live channel (dropped unless connected in voice)
        """
        surface = self.surface
        if surface is None:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "BINARY_WITHOUT_SESSION",
                "payload_len": len(payload),
            })
            return GatewayResult()

        try:
            frame = decode_c2s_frame(payload, ts_ms=now_ms())
        except BinaryProtocolError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "BINARY_DECODE_ERROR",
                "session_id": surface.session_id,
                "error": str(e),
                "payload_len": len(payload),
            })
            return GatewayResult()

        gap_result = check_sequence_gap(
            last_seq=self._last_ingest_seq,
            current_seq=frame.sequence_num,
        )
        if gap_result.gap:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "SEQ_GAP_DETECTED",
                "session_id": surface.session_id,
                "expected": gap_result.expected,
                "actual": gap_result.actual,
                "gap_size": gap_result.gap_size,
            })

        self._last_ingest_seq = frame.sequence_num

        surface.controller.send_user_audio(frame.pcm_bytes)
        return GatewayResult()

    # ------------------------------------------------------------------
    # Message -> action mapping
    # ------------------------------------------------------------------

    def _to_action(
        self,
        surface: AssistantSurface,
        msg_type: Any,
        data: dict[str, Any],
        ts_ms: int,
    ) -> Action | None:
        simple = _SIMPLE_ACTIONS.get(msg_type) if isinstance(msg_type, str) else None
        if simple is not None:
            action_cls, action_type = simple
            return action_cls(action_type=action_type, ts_ms=ts_ms)

        if msg_type == "SEND_TEXT":
            text = data.get("text")
            if not isinstance(text, str):
                return self._invalid(surface, msg_type, "text_missing")
            return SendText(action_type=ActionType.SEND_TEXT, ts_ms=ts_ms, text=text)

        if msg_type == "PICK_SUGGESTION":
            index = data.get("index")
            prompt = prompt_at(index, surface.language) if isinstance(index, int) else None
            if prompt is None:
                return self._invalid(surface, msg_type, "suggestion_index_invalid")
            return PickSuggestion(
                action_type=ActionType.PICK_SUGGESTION,
                ts_ms=ts_ms,
                text=prompt,
            )

        log_event({
            "ts_ms": now_ms(),
            "event_type": "UNKNOWN_MESSAGE_TYPE",
            "msg_type": msg_type,
            "session_id": surface.session_id,
        })
        return None

    def _invalid(self, surface: AssistantSurface, msg_type: str, reason: str) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "INVALID_MESSAGE",
            "msg_type": msg_type,
            "reason": reason,
            "session_id": surface.session_id,
        })
