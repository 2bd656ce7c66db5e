"""
Message log (transcript) for one assistant surface.

Responsibilities:
- Store ordered user/agent turns
- Filter annotation tokens out of agent text before storing it
- Discard agent turns that are empty after filtering
- Assign strictly increasing sequence indexes per epoch (reset -> 0)

Non-responsibilities:
- No session lifecycle
- No suggestion visibility decisions
- No persistence
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from observability.logger import log_event, now_ms
from transcript.annotations import strip_annotations


class Role(str, Enum):
    """Author of a transcript turn."""

    USER = "user"
    AGENT = "agent"


@dataclass(frozen=True)
class ChatMessage:
    """Single transcript turn. Never mutated after insertion."""
    role: Role
    text: str
    sequence_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "text": self.text,
            "sequence_index": self.sequence_index,
        }


class MessageLog:
    """
    Append-only transcript owned by a single assistant surface.

    Invariants:
    - Messages are stored in insertion order
    - sequence_index is strictly increasing within an epoch
    - reset() is the only way messages ever leave the log
    """

    def __init__(
        self,
        session_id: str | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._session_id = session_id
        self._on_change = on_change
        self._messages: list[ChatMessage] = []
        self._next_index = 0
        self._epoch = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, role: Role, raw_text: str) -> ChatMessage | None:
        """
        Append a turn.

        Agent text is filtered first; if nothing remains the turn is
        discarded and None is returned. User text is stored verbatim.
        """
        text = strip_annotations(raw_text) if role is Role.AGENT else raw_text

        if not text:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "transcript_message_discarded",
                "session_id": self._session_id,
                "role": role.value,
                "raw_len": len(raw_text),
            })
            return None

        message = ChatMessage(role=role, text=text, sequence_index=self._next_index)
        self._next_index += 1
        self._messages.append(message)

        log_event({
            "ts_ms": now_ms(),
            "event_type": "transcript_message_appended",
            "session_id": self._session_id,
            "role": role.value,
            "sequence_index": message.sequence_index,
            "epoch": self._epoch,
            "char_count": len(text),
        })
        self._changed()
        return message

    def reset(self) -> None:
        """Empty the log and restart numbering at zero."""
        dropped = len(self._messages)
        self._messages = []
        self._next_index = 0
        self._epoch += 1

        log_event({
            "ts_ms": now_ms(),
            "event_type": "transcript_reset",
            "session_id": self._session_id,
            "dropped": dropped,
            "epoch": self._epoch,
        })
        self._changed()

    def messages(self) -> tuple[ChatMessage, ...]:
        """Return an immutable view of the transcript."""
        return tuple(self._messages)

    def has_agent_message(self) -> bool:
        return any(m.role is Role.AGENT for m in self._messages)

    @property
    def epoch(self) -> int:
        """Number of resets so far."""
        return self._epoch

    def __len__(self) -> int:
        return len(self._messages)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
