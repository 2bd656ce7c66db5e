"""
Side-effect command definitions for the mode coordinator.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - The runtime executes commands in emitted order and awaits each one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from coordinator.enums.mode import Mode


class CommandType(str, Enum):
    """Stable discriminants used for logging and runtime dispatch."""

    # Session
    START_SESSION = "START_SESSION"
    STOP_SESSION = "STOP_SESSION"
    SEND_USER_MESSAGE = "SEND_USER_MESSAGE"

    # Surface
    ENTER_MODE = "ENTER_MODE"
    RESET_TRANSCRIPT = "RESET_TRANSCRIPT"

    # Observability
    LOG_EVENT = "LOG_EVENT"


class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Session Commands
# =============================================================================

@dataclass(frozen=True)
class StartSession(Command):
    """Open a channel for `mode` (SessionController.start)."""
    mode: Mode
    command_type: CommandType = CommandType.START_SESSION


@dataclass(frozen=True)
class StopSession(Command):
    """Tear down the live channel and wait until it is gone."""
    command_type: CommandType = CommandType.STOP_SESSION


@dataclass(frozen=True)
class SendUserMessage(Command):
    """Forward typed (or picked) text on the live channel."""
    text: str
    command_type: CommandType = CommandType.SEND_USER_MESSAGE


# =============================================================================
# Surface Commands
# =============================================================================

@dataclass(frozen=True)
class EnterMode(Command):
    """
    Make `mode` the active surface mode.

    The runtime answers with a ModeEntered(mode, entry) action.
    """
    mode: Mode
    entry: int
    command_type: CommandType = CommandType.ENTER_MODE


@dataclass(frozen=True)
class ResetTranscript(Command):
    """Clear the message log."""
    command_type: CommandType = CommandType.RESET_TRANSCRIPT


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
