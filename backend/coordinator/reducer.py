"""
Pure mode coordinator reducer.

(state, action) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (mode, status, action) combination is handled or explicitly
  ignored (logged).
- `state.mode` and `state.status` are mirrored from the Session by the
  runtime; the reducer only reads them.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from coordinator.actions import (
    Action,
    EndChat,
    ModeEntered,
    PickSuggestion,
    SendText,
    StartNewChat,
    SwitchToText,
    SwitchToVoice,
    ToggleVoice,
)
from coordinator.commands import (
    Command,
    EnterMode,
    LogEvent,
    ResetTranscript,
    SendUserMessage,
    StartSession,
    StopSession,
)
from coordinator.enums.mode import Mode
from coordinator.state_dataclass import CoordinatorState
from session.status import SessionStatus
from transcript.suggestions import TranscriptVisibilityFlags


Result = tuple[CoordinatorState, tuple[Command, ...]]


# =============================================================================
# Small helpers
# =============================================================================

def _log(
    state: CoordinatorState,
    action: Action,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": action.ts_ms,
            "event_type": action.action_type.value,
            "mode": state.mode.value,
            "status": state.status.value,
            "mode_entry": state.mode_entry,
            "decision": decision,
            "flags": {
                "show_suggestions": state.flags.show_suggestions,
                "chat_ended": state.flags.chat_ended,
            },
            "details": details or {},
        }
    )


def _ignore(state: CoordinatorState, action: Action, reason: str) -> Result:
    return state, (_log(state, action, "ignore", {"reason": reason}),)


def _switch_mode(state: CoordinatorState, action: Action, to_mode: Mode) -> Result:
    """
    Tear down, clear the transcript, and enter `to_mode` as a new entry.

    StopSession is emitted for every non-idle status (including ERROR, which
    stop() acknowledges) so the mode change always happens from IDLE.
    """
    entry = state.mode_entry + 1
    new_state = replace(
        state,
        flags=TranscriptVisibilityFlags(),
        mode_entry=entry,
    )

    commands: tuple[Command, ...] = ()
    if state.status is not SessionStatus.IDLE:
        commands += (StopSession(),)

    commands += (
        ResetTranscript(),
        EnterMode(mode=to_mode, entry=entry),
        _log(new_state, action, "mode_switch", {
            "from_mode": state.mode.value,
            "to_mode": to_mode.value,
            "entry": entry,
            "stopped_session": state.status is not SessionStatus.IDLE,
        }),
    )
    return new_state, commands


def _send(state: CoordinatorState, action: Action, raw_text: str, source: str) -> Result:
    """Shared path for typed and picked text."""
    if state.mode is not Mode.TEXT:
        return _ignore(state, action, "not_text_mode")
    if state.flags.chat_ended:
        return _ignore(state, action, "chat_ended")

    text = raw_text.strip()
    if not text:
        return _ignore(state, action, "empty_text")

    new_state = replace(
        state,
        flags=replace(state.flags, show_suggestions=False),
    )
    return new_state, (
        SendUserMessage(text=text),
        _log(new_state, action, "send_user_message", {
            "source": source,
            "char_count": len(text),
        }),
    )


# =============================================================================
# Action handlers
# =============================================================================

def _on_toggle_voice(state: CoordinatorState, action: ToggleVoice) -> Result:
    if state.mode is not Mode.VOICE:
        return _ignore(state, action, "not_voice_mode")

    if state.status in (SessionStatus.IDLE, SessionStatus.ERROR):
        return state, (
            StartSession(mode=Mode.VOICE),
            _log(state, action, "start_voice_session"),
        )

    if state.status is SessionStatus.CONNECTED:
        return state, (
            StopSession(),
            _log(state, action, "stop_voice_session"),
        )

    return _ignore(state, action, f"session_{state.status.value}")


def _on_switch_to_text(state: CoordinatorState, action: SwitchToText) -> Result:
    if state.mode is not Mode.VOICE:
        return _ignore(state, action, "already_text_mode")
    return _switch_mode(state, action, Mode.TEXT)


def _on_switch_to_voice(state: CoordinatorState, action: SwitchToVoice) -> Result:
    if state.mode is not Mode.TEXT:
        return _ignore(state, action, "already_voice_mode")
    return _switch_mode(state, action, Mode.VOICE)


def _on_end_chat(state: CoordinatorState, action: EndChat) -> Result:
    if state.mode is not Mode.TEXT:
        return _ignore(state, action, "not_text_mode")
    if state.flags.chat_ended:
        return _ignore(state, action, "chat_already_ended")
    if state.status is not SessionStatus.CONNECTED:
        return _ignore(state, action, f"session_{state.status.value}")

    new_state = replace(state, flags=replace(state.flags, chat_ended=True))
    return new_state, (
        StopSession(),
        _log(new_state, action, "end_chat"),
    )


def _on_start_new_chat(state: CoordinatorState, action: StartNewChat) -> Result:
    if state.mode is not Mode.TEXT:
        return _ignore(state, action, "not_text_mode")
    # Ended, failed, or closed by the agent: all restart the same way.
    if state.status not in (SessionStatus.IDLE, SessionStatus.ERROR):
        if not state.flags.chat_ended:
            return _ignore(state, action, "chat_in_progress")
        return _ignore(state, action, f"session_{state.status.value}")

    new_state = replace(state, flags=TranscriptVisibilityFlags())
    return new_state, (
        ResetTranscript(),
        StartSession(mode=Mode.TEXT),
        _log(new_state, action, "start_new_chat"),
    )


def _on_mode_entered(state: CoordinatorState, action: ModeEntered) -> Result:
    if action.mode is not Mode.TEXT:
        return state, (_log(state, action, "mode_entered", {"entry": action.entry}),)

    if action.entry != state.mode_entry:
        return _ignore(state, action, "stale_mode_entry")
    if state.autostart_entry == action.entry:
        return _ignore(state, action, "autostart_already_fired")

    new_state = replace(state, autostart_entry=action.entry)
    return new_state, (
        StartSession(mode=Mode.TEXT),
        _log(new_state, action, "text_autostart", {"entry": action.entry}),
    )


# =============================================================================
# Reducer
# =============================================================================

def reduce(state: CoordinatorState, action: Action) -> Result:
    """
    Pure reducer for the assistant surface.

    Given the current coordinator state and a single action, returns:
    - the next state
    - a tuple of commands describing required side effects

    Ordering:
    - StopSession is always emitted before any StartSession in the same tuple
    - LogEvent commands come last
    """
    if isinstance(action, ToggleVoice):
        return _on_toggle_voice(state, action)

    if isinstance(action, SwitchToText):
        return _on_switch_to_text(state, action)

    if isinstance(action, SwitchToVoice):
        return _on_switch_to_voice(state, action)

    if isinstance(action, SendText):
        return _send(state, action, action.text, "typed")

    if isinstance(action, PickSuggestion):
        return _send(state, action, action.text, "suggestion")

    if isinstance(action, EndChat):
        return _on_end_chat(state, action)

    if isinstance(action, StartNewChat):
        return _on_start_new_chat(state, action)

    if isinstance(action, ModeEntered):
        return _on_mode_entered(state, action)

    return _ignore(state, action, "unhandled_action")
