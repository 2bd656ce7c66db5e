"""
Authoritative mode coordinator state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from coordinator.enums.mode import Mode
from session.status import SessionStatus
from transcript.suggestions import TranscriptVisibilityFlags


@dataclass(frozen=True)
class CoordinatorState:
    """Immutable snapshot of all coordinator-owned state."""

    # ------------------------------------------------------------------
    # Mirrored from the Session before every reduce.
    # The reducer reads these and never writes them.
    # ------------------------------------------------------------------
    mode: Mode = Mode.VOICE
    status: SessionStatus = SessionStatus.IDLE

    # ------------------------------------------------------------------
    # Text surface visibility
    # ------------------------------------------------------------------
    flags: TranscriptVisibilityFlags = field(default_factory=TranscriptVisibilityFlags)

    # ------------------------------------------------------------------
    # Mode entry tracking
    # ------------------------------------------------------------------
    # Monotonic; bumped by every mode switch. 0 is the initial voice surface.
    mode_entry: int = 0

    # Entry for which text auto-start already fired (single use per entry).
    autostart_entry: int | None = None
