"""
Session controller.

Responsibilities:
- Own the single live channel of a surface
- Drive session status along the legal edges (see session.status)
- Gate voice sessions on the microphone permission
- Scope inbound channel handlers to a session generation so late events
  from a superseded channel are dropped, never misattributed
- Route inbound agent text into the message log and the speaking signal
  into the Session record

Non-responsibilities:
- No mode decisions (ModeCoordinator)
- No retries or backoff: a failed start leaves ERROR until the user retries
- No transcript filtering rules (MessageLog)
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from adapters.channel.base import (
    ChannelError,
    ChannelFactory,
    ChannelHandlers,
    ConversationChannel,
)
from constants import (
    CHANNEL_TRANSPORT_WEBSOCKET,
    CONNECT_TIMEOUT_S,
    DISCONNECT_TIMEOUT_S,
    TEXT_MODE_VOLUME,
    VOICE_MODE_VOLUME,
    VOLUME_MAX,
    VOLUME_MIN,
)
from coordinator.enums.mode import Mode
from observability.logger import log_event, now_ms
from observability.metrics import timed
from session.permission import PermissionGate, PermissionResult
from session.session import Session
from session.status import ErrorReason, SessionStatus, check_transition
from transcript.message_log import MessageLog, Role


_PERMISSION_FAILURES: dict[PermissionResult, ErrorReason] = {
    PermissionResult.DENIED: ErrorReason.PERMISSION_DENIED,
    PermissionResult.UNSUPPORTED: ErrorReason.CAPABILITY_UNSUPPORTED,
    PermissionResult.UNKNOWN: ErrorReason.UNKNOWN_CHANNEL_ERROR,
}


class SessionController:
    """
    One controller == one Session == at most one live channel.

    Generation:
    - Monotonic integer, bumped by every start() and every stop()
    - Handlers built by start() capture the generation they belong to and
      compare it on every callback
    - 0 means "no session has been started yet"
    """

    def __init__(
        self,
        *,
        session: Session,
        message_log: MessageLog,
        permission_gate: PermissionGate,
        channel_factory: ChannelFactory,
        agent_id: str,
        connect_timeout_s: float = CONNECT_TIMEOUT_S,
        disconnect_timeout_s: float = DISCONNECT_TIMEOUT_S,
        on_change: Callable[[], None] | None = None,
        on_error: Callable[[ErrorReason], None] | None = None,
        on_agent_audio: Callable[[int, bytes], None] | None = None,
    ) -> None:
        self._session = session
        self._log = message_log
        self._permission_gate = permission_gate
        self._channel_factory = channel_factory
        self._agent_id = agent_id
        self._connect_timeout_s = connect_timeout_s
        self._disconnect_timeout_s = disconnect_timeout_s

        self._on_change = on_change
        self._on_error = on_error
        self._on_agent_audio = on_agent_audio

        self._channel: ConversationChannel | None = None
        self._generation = 0
        self._teardown_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def channel(self) -> ConversationChannel | None:
        return self._channel

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def start(self, mode: Mode) -> bool:
        """
        Open a session for `mode`.

        Returns True if the session reached CONNECTED. Failures leave the
        session in ERROR with a classified reason; a start superseded by
        stop() returns False without touching status.
        """
        s = self._session
        if s.status not in (SessionStatus.IDLE, SessionStatus.ERROR):
            self._log_event("start_ignored", {"reason": "session_not_idle"})
            return False
        if mode is not s.mode:
            self._log_event(
                "start_ignored",
                {"reason": "mode_mismatch", "requested_mode": mode.value},
            )
            return False

        self._generation += 1
        generation = self._generation
        s.last_error = None
        self._transition(SessionStatus.CONNECTING, source="start")

        if mode is Mode.VOICE:
            result = await self._permission_gate.request_microphone()
            if generation != self._generation:
                return False
            if result is not PermissionResult.GRANTED:
                self._fail(_PERMISSION_FAILURES[result], detail=f"permission_{result.value}")
                return False

        channel = self._channel_factory()
        self._channel = channel
        handlers = self._subscribe(generation)

        reason: ErrorReason | None = None
        detail = ""
        try:
            with timed(
                "channel_connect",
                session_id=s.session_id,
                details={"mode": mode.value, "generation": generation},
            ):
                await asyncio.wait_for(
                    channel.start_session(
                        agent_id=self._agent_id,
                        transport=CHANNEL_TRANSPORT_WEBSOCKET,
                        handlers=handlers,
                    ),
                    timeout=self._connect_timeout_s,
                )
        except asyncio.TimeoutError:
            reason = ErrorReason.CONNECTION_FAILURE
            detail = f"connect_timeout_{self._connect_timeout_s}s"
        except ChannelError as e:
            reason = ErrorReason.CONNECTION_FAILURE
            detail = str(e)
        except Exception as e:  # pylint: disable=broad-exception-caught
            reason = ErrorReason.UNKNOWN_CHANNEL_ERROR
            detail = f"{type(e).__name__}: {e}"

        if generation != self._generation:
            # stop() ran while we were connecting; it owns the teardown.
            if reason is None:
                await self._close_channel(channel)
            return False

        if reason is not None:
            self._channel = None
            await self._close_channel(channel)
            self._fail(reason, detail=detail)
            return False

        self._transition(SessionStatus.CONNECTED, source="channel_open")
        self.set_volume(TEXT_MODE_VOLUME if mode is Mode.TEXT else VOICE_MODE_VOLUME)
        return True

    async def stop(self) -> None:
        """
        Tear the session down.

        - IDLE: no-op
        - DISCONNECTING: waits for the in-flight stop
        - ERROR: acknowledges the failure (ERROR -> IDLE)
        - CONNECTING / CONNECTED: DISCONNECTING -> close channel -> IDLE
        """
        s = self._session

        if s.status is SessionStatus.IDLE:
            self._log_event("stop_noop", {"reason": "already_idle"})
            return

        if s.status is SessionStatus.DISCONNECTING:
            teardown = self._teardown_task
            if teardown is not None:
                await asyncio.shield(teardown)
            return

        if s.status is SessionStatus.ERROR:
            s.last_error = None
            self._transition(SessionStatus.IDLE, source="error_acknowledged")
            return

        # Invalidate handlers before anything can await.
        self._generation += 1
        channel = self._channel
        self._channel = None
        s.is_speaking = False
        self._transition(SessionStatus.DISCONNECTING, source="stop")

        # The close outlives a cancelled caller; a later stop() awaits it.
        teardown = asyncio.create_task(self._finish_stop(channel))
        self._teardown_task = teardown
        await asyncio.shield(teardown)

    def send_message(self, text: str) -> bool:
        """
        Forward typed text and append it to the transcript.

        Only valid while CONNECTED. Otherwise the text is dropped silently
        and False is returned.
        """
        channel = self._channel
        if self._session.status is not SessionStatus.CONNECTED or channel is None:
            self._log_event("send_dropped_not_connected", {"char_count": len(text)})
            return False

        try:
            channel.send_user_message(text)
        except ChannelError as e:
            self._log_event("send_dropped_channel_error", {"error": str(e)})
            return False

        self._log.append(Role.USER, text)
        return True

    def send_user_audio(self, pcm_bytes: bytes) -> bool:
        """Forward one mic frame; only while CONNECTED in voice mode."""
        channel = self._channel
        if (
            channel is None
            or self._session.status is not SessionStatus.CONNECTED
            or self._session.mode is not Mode.VOICE
        ):
            return False

        try:
            channel.send_user_audio(pcm_bytes)
        except ChannelError:
            return False
        return True

    def set_volume(self, level: float) -> None:
        """Adjust agent output volume. Never changes status."""
        level = min(VOLUME_MAX, max(VOLUME_MIN, level))
        self._session.volume = level

        channel = self._channel
        if channel is not None:
            channel.set_volume(level)

        self._log_event("volume_set", {"volume": level})
        self._changed()

    # ------------------------------------------------------------------
    # Inbound handlers (generation-scoped)
    # ------------------------------------------------------------------

    def _subscribe(self, generation: int) -> ChannelHandlers:
        def on_message(role: str, message: str) -> None:
            if not self._is_current(generation, "message"):
                return
            if role == Role.AGENT.value:
                self._log.append(Role.AGENT, message)
            else:
                # User turns are appended on send, not from transcripts.
                self._log_event("inbound_user_transcript", {"char_count": len(message)})

        def on_error(reason: str) -> None:
            if not self._is_current(generation, "error"):
                return
            self._log_event("channel_error", {"reason": reason})

        def on_speaking(speaking: bool) -> None:
            if not self._is_current(generation, "speaking"):
                return
            if self._session.is_speaking != speaking:
                self._session.is_speaking = speaking
                self._changed()

        def on_audio(pcm_bytes: bytes) -> None:
            if not self._is_current(generation, "audio"):
                return
            if self._on_agent_audio is not None:
                self._on_agent_audio(generation, pcm_bytes)

        def on_disconnect(reason: str | None) -> None:
            if not self._is_current(generation, "disconnect"):
                return
            self._handle_remote_close(reason)

        return ChannelHandlers(
            on_message=on_message,
            on_error=on_error,
            on_speaking=on_speaking,
            on_audio=on_audio,
            on_disconnect=on_disconnect,
        )

    def _is_current(self, generation: int, kind: str) -> bool:
        if generation == self._generation:
            return True
        self._log_event(
            "stale_channel_event_dropped",
            {"kind": kind, "event_generation": generation},
        )
        return False

    def _handle_remote_close(self, reason: str | None) -> None:
        """The channel closed itself while live; walk the normal teardown edges."""
        s = self._session
        self._log_event("channel_closed_remotely", {"reason": reason})

        self._generation += 1
        self._channel = None
        s.is_speaking = False

        if s.status is SessionStatus.CONNECTED:
            self._transition(SessionStatus.DISCONNECTING, source="remote_close")
            self._transition(SessionStatus.IDLE, source="remote_close")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _finish_stop(self, channel: ConversationChannel | None) -> None:
        await self._close_channel(channel)
        self._teardown_task = None
        self._transition(SessionStatus.IDLE, source="channel_closed")

    async def _close_channel(self, channel: ConversationChannel | None) -> None:
        """Graceful, bounded close. Errors are logged, never raised."""
        if channel is None:
            return
        try:
            await asyncio.wait_for(channel.end_session(), timeout=self._disconnect_timeout_s)
        except asyncio.TimeoutError:
            self._log_event(
                "channel_close_timeout",
                {"timeout_s": self._disconnect_timeout_s},
            )
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._log_event(
                "channel_close_failed",
                {"exception": type(e).__name__, "message": str(e)},
            )

    def _fail(self, reason: ErrorReason, *, detail: str) -> None:
        s = self._session
        s.last_error = reason
        s.is_speaking = False
        self._transition(SessionStatus.ERROR, source="start_failed", extra={
            "reason": reason.value,
            "detail": detail,
        })
        if self._on_error is not None:
            self._on_error(reason)

    def _transition(
        self,
        to_status: SessionStatus,
        *,
        source: str,
        extra: dict[str, Any] | None = None,
    ) -> None:
        s = self._session
        from_status = s.status
        check_transition(from_status, to_status)
        s.status = to_status

        self._log_event("state_changed", {
            "from_status": from_status.value,
            "to_status": to_status.value,
            "source": source,
            **(extra or {}),
        })
        self._changed()

    def _log_event(self, decision: str, details: dict[str, Any]) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "session_controller",
            "decision": decision,
            "generation": self._generation,
            **self._session.log_context(),
            "details": details,
        })

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
