"""
User-intent actions for the mode coordinator reducer.

Rules:
- Actions describe what the user did (or what the runtime finished doing).
- Actions carry data only (no behavior).
- All coordinator decisions are based on these actions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from coordinator.enums.mode import Mode


# =============================================================================
# Action Type Enumeration
# =============================================================================

class ActionType(str, Enum):
    """
    Canonical action types understood by the reducer.

    Every (mode, status, action_type) combination must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # Voice surface
    TOGGLE_VOICE = "TOGGLE_VOICE"
    SWITCH_TO_TEXT = "SWITCH_TO_TEXT"

    # Text surface
    SWITCH_TO_VOICE = "SWITCH_TO_VOICE"
    SEND_TEXT = "SEND_TEXT"
    PICK_SUGGESTION = "PICK_SUGGESTION"
    END_CHAT = "END_CHAT"
    START_NEW_CHAT = "START_NEW_CHAT"

    # Runtime feedback
    MODE_ENTERED = "MODE_ENTERED"


# =============================================================================
# Base Action
# =============================================================================

@dataclass(frozen=True)
class Action:
    """
    Base action type.

    All actions must specify:
    - action_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    action_type: ActionType
    ts_ms: int


# =============================================================================
# Voice surface
# =============================================================================

@dataclass(frozen=True)
class ToggleVoice(Action):
    """Primary voice button: start when idle, stop when connected."""


@dataclass(frozen=True)
class SwitchToText(Action):
    """Leave voice for the text chat surface."""


# =============================================================================
# Text surface
# =============================================================================

@dataclass(frozen=True)
class SwitchToVoice(Action):
    """Leave text chat for the voice surface."""


@dataclass(frozen=True)
class SendText(Action):
    """User typed and submitted text."""
    text: str


@dataclass(frozen=True)
class PickSuggestion(Action):
    """
    User picked a suggested prompt.

    `text` is the prompt already resolved to the surface language, so the
    reducer treats it exactly like SendText.
    """
    text: str


@dataclass(frozen=True)
class EndChat(Action):
    """User ended the text chat."""


@dataclass(frozen=True)
class StartNewChat(Action):
    """User asked for a fresh text chat after ending (or failing) one."""


# =============================================================================
# Runtime feedback
# =============================================================================

@dataclass(frozen=True)
class ModeEntered(Action):
    """
    Emitted by the runtime after an EnterMode command has been applied.

    `entry` identifies the mode entry; a duplicate for the same entry must
    not trigger a second auto-start.
    """
    mode: Mode
    entry: int
