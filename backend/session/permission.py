"""
Microphone permission gate.

Responsibilities:
- Ask the runtime capability for microphone access before a voice session
- Cache a grant for the lifetime of the surface
- Classify every outcome as GRANTED | DENIED | UNSUPPORTED | UNKNOWN

Non-responsibilities:
- No retries (every retry is a user-initiated start)
- No session status changes (the SessionController maps results to ERROR)
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable

from observability.logger import log_event, now_ms


class PermissionResult(str, Enum):
    """Outcome of a microphone permission request."""

    GRANTED = "granted"
    DENIED = "denied"            # User or policy refused; retriable
    UNSUPPORTED = "unsupported"  # Capability absent from the runtime; not retriable
    UNKNOWN = "unknown"          # Anything else; retriable


@runtime_checkable
class PermissionCapability(Protocol):
    """Whatever can actually prompt for the microphone (browser, OS, fake)."""

    async def request_microphone(self) -> PermissionResult: ...


def parse_permission_result(raw: Any) -> PermissionResult:
    """Map a host-reported result string to a PermissionResult."""
    if isinstance(raw, str):
        try:
            return PermissionResult(raw.strip().lower())
        except ValueError:
            pass
    return PermissionResult.UNKNOWN


class PermissionGate:
    """
    Caching front for a PermissionCapability.

    Only a GRANTED result is cached; denials are re-asked on the next
    user-initiated start.
    """

    def __init__(
        self,
        capability: PermissionCapability,
        *,
        session_id: str | None = None,
    ) -> None:
        self._capability = capability
        self._session_id = session_id
        self._granted = False

    @property
    def granted(self) -> bool:
        return self._granted

    async def request_microphone(self) -> PermissionResult:
        if self._granted:
            return PermissionResult.GRANTED

        try:
            result = await self._capability.request_microphone()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "mic_permission_request_failed",
                "session_id": self._session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            result = PermissionResult.UNKNOWN

        if not isinstance(result, PermissionResult):
            result = parse_permission_result(result)

        if result is PermissionResult.GRANTED:
            self._granted = True

        log_event({
            "ts_ms": now_ms(),
            "event_type": "mic_permission_result",
            "session_id": self._session_id,
            "result": result.value,
        })
        return result


class ClientMicrophonePermission:
    """
    PermissionCapability backed by the host UI.

    The browser owns getUserMedia, so a request is a round trip:
    MIC_PERMISSION_REQUEST goes out through `send_control`, and the gateway
    calls resolve() when the MIC_PERMISSION reply arrives. A reply that never
    comes is reported as UNKNOWN after `timeout_s`.
    """

    def __init__(
        self,
        *,
        send_control: Callable[[dict[str, Any]], None],
        timeout_s: float,
        session_id: str | None = None,
    ) -> None:
        self._send_control = send_control
        self._timeout_s = timeout_s
        self._session_id = session_id
        self._pending: asyncio.Future[PermissionResult] | None = None

    async def request_microphone(self) -> PermissionResult:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[PermissionResult] = loop.create_future()
        self._pending = future

        self._send_control({
            "type": "MIC_PERMISSION_REQUEST",
            "ts_ms": now_ms(),
        })

        try:
            return await asyncio.wait_for(future, timeout=self._timeout_s)
        except asyncio.TimeoutError:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "mic_permission_reply_timeout",
                "session_id": self._session_id,
                "timeout_s": self._timeout_s,
            })
            return PermissionResult.UNKNOWN
        finally:
            if self._pending is future:
                self._pending = None

    def resolve(self, raw_result: Any) -> bool:
        """
        Deliver the host's reply. Returns False if no request was pending.
        """
        future = self._pending
        if future is None or future.done():
            log_event({
                "ts_ms": now_ms(),
                "event_type": "mic_permission_reply_unexpected",
                "session_id": self._session_id,
                "result": repr(raw_result),
            })
            return False

        future.set_result(parse_permission_result(raw_result))
        return True

    def cancel(self) -> None:
        """Abandon a pending request (surface unmounting)."""
        future = self._pending
        self._pending = None
        if future is not None and not future.done():
            future.set_result(PermissionResult.UNKNOWN)
