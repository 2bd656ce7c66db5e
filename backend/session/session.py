"""
Session record.

Per assistant surface:
- Exactly one instance, created on mount with {IDLE, VOICE}
- Owned by the surface; status/is_speaking/volume written only by the
  SessionController, mode written only by the ModeCoordinator runtime
- NOT a state machine
- Contains no coordination logic
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from coordinator.enums.mode import Mode
from session.status import ErrorReason, SessionStatus


@dataclass
class Session:
    """Mutable record of the single conversational session of a surface."""

    session_id: str

    status: SessionStatus = SessionStatus.IDLE
    mode: Mode = Mode.VOICE
    is_speaking: bool = False
    volume: float = 1.0

    last_error: ErrorReason | None = None

    def log_context(self) -> dict[str, Any]:
        """Return standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "mode": self.mode.value,
        }
