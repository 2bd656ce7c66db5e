"""
Session status tracking.

Connection lifecycle of the single live channel owned by a surface:
IDLE | CONNECTING | CONNECTED | DISCONNECTING | ERROR

This is pure data plus the table of legal edges. Transitions themselves are
performed by the SessionController.
"""

from __future__ import annotations

from enum import Enum


class SessionStatus(str, Enum):
    """
    Channel lifecycle status.

    Independent of Mode: any mode can be paired with any status, but the
    mode may only change while the status is IDLE or DISCONNECTING.
    """

    IDLE = "idle"                    # No channel
    CONNECTING = "connecting"        # Permission request and/or handshake in flight
    CONNECTED = "connected"          # Channel live
    DISCONNECTING = "disconnecting"  # Graceful close in flight
    ERROR = "error"                  # Last start failed; user must retry


class ErrorReason(str, Enum):
    """Classified reason carried by the ERROR status."""

    PERMISSION_DENIED = "permission_denied"
    CAPABILITY_UNSUPPORTED = "capability_unsupported"
    CONNECTION_FAILURE = "connection_failure"
    UNKNOWN_CHANNEL_ERROR = "unknown_channel_error"


class IllegalTransition(RuntimeError):
    """Raised when code attempts a status change that has no legal edge."""

    def __init__(self, from_status: SessionStatus, to_status: SessionStatus) -> None:
        super().__init__(f"illegal session transition {from_status.value} -> {to_status.value}")
        self.from_status = from_status
        self.to_status = to_status


class IllegalModeChange(RuntimeError):
    """Raised when the mode is flipped while the session status forbids it."""

    def __init__(self, status: SessionStatus) -> None:
        super().__init__(f"mode change while session is {status.value}")
        self.status = status


LEGAL_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({SessionStatus.CONNECTING}),
    SessionStatus.CONNECTING: frozenset({
        SessionStatus.CONNECTED,
        SessionStatus.ERROR,
        SessionStatus.DISCONNECTING,
    }),
    SessionStatus.CONNECTED: frozenset({SessionStatus.DISCONNECTING}),
    SessionStatus.DISCONNECTING: frozenset({SessionStatus.IDLE}),
    # Retry, or acknowledge the failure on teardown
    SessionStatus.ERROR: frozenset({SessionStatus.CONNECTING, SessionStatus.IDLE}),
}

# Statuses in which a channel exists and owns the mic / audio output.
LIVE_STATUSES: frozenset[SessionStatus] = frozenset({
    SessionStatus.CONNECTING,
    SessionStatus.CONNECTED,
})

# Statuses in which the mode may be flipped.
MODE_CHANGE_STATUSES: frozenset[SessionStatus] = frozenset({
    SessionStatus.IDLE,
    SessionStatus.DISCONNECTING,
})


def is_legal(from_status: SessionStatus, to_status: SessionStatus) -> bool:
    return to_status in LEGAL_TRANSITIONS[from_status]


def check_transition(from_status: SessionStatus, to_status: SessionStatus) -> None:
    """Raise IllegalTransition unless from_status -> to_status is a legal edge."""
    if not is_legal(from_status, to_status):
        raise IllegalTransition(from_status, to_status)
