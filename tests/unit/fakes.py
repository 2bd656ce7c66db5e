# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any

from adapters.channel.base import (
    ChannelClosedError,
    ChannelHandlers,
    ChannelStatus,
    ConversationChannel,
)
from config import AppConfig
from session.permission import PermissionResult


def make_config(**overrides: Any) -> AppConfig:
    config = AppConfig(
        env="test",
        log_level="INFO",
        host="127.0.0.1",
        port=8000,
        agent_id="agent_test",
        convai_base_url="wss://example.invalid/convai",
        elevenlabs_api_key=None,
        connect_timeout_s=1.0,
        disconnect_timeout_s=1.0,
        permission_reply_timeout_s=1.0,
        default_language="en",
        enable_json_logs=True,
    )
    return replace(config, **overrides)


class FakeChannel(ConversationChannel):
    """In-memory channel; connects instantly unless told otherwise."""

    def __init__(
        self,
        *,
        connect_error: BaseException | None = None,
        hang: bool = False,
        close_error: BaseException | None = None,
        close_delay_s: float = 0.0,
    ) -> None:
        self.connect_error = connect_error
        self.hang = hang
        self.close_error = close_error
        self.close_delay_s = close_delay_s

        self.handlers: ChannelHandlers | None = None
        self.agent_id: str | None = None
        self.transport: str | None = None
        self.sent_text: list[str] = []
        self.sent_audio: list[bytes] = []
        self.volumes: list[float] = []
        self.end_calls = 0
        self._status = ChannelStatus.DISCONNECTED

    @property
    def status(self) -> ChannelStatus:
        return self._status

    @property
    def is_speaking(self) -> bool:
        return False

    @property
    def live(self) -> bool:
        return self._status in (ChannelStatus.CONNECTING, ChannelStatus.CONNECTED)

    async def start_session(
        self,
        *,
        agent_id: str,
        transport: str,
        handlers: ChannelHandlers,
    ) -> None:
        self.agent_id = agent_id
        self.transport = transport
        self.handlers = handlers
        self._status = ChannelStatus.CONNECTING

        if self.hang:
            await asyncio.Event().wait()
        if self.connect_error is not None:
            self._status = ChannelStatus.DISCONNECTED
            raise self.connect_error

        self._status = ChannelStatus.CONNECTED

    async def end_session(self) -> None:
        self.end_calls += 1
        if self.close_delay_s:
            await asyncio.sleep(self.close_delay_s)
        self._status = ChannelStatus.DISCONNECTED
        if self.close_error is not None:
            raise self.close_error

    def send_user_message(self, text: str) -> None:
        if self._status is not ChannelStatus.CONNECTED:
            raise ChannelClosedError("not connected")
        self.sent_text.append(text)

    def send_user_audio(self, pcm_bytes: bytes) -> None:
        if self._status is not ChannelStatus.CONNECTED:
            raise ChannelClosedError("not connected")
        self.sent_audio.append(pcm_bytes)

    def set_volume(self, volume: float) -> None:
        self.volumes.append(volume)

    # Test helpers: simulate inbound traffic
    def agent_says(self, text: str) -> None:
        assert self.handlers is not None
        self.handlers.on_message("agent", text)

    def remote_close(self, reason: str | None = None) -> None:
        assert self.handlers is not None
        self._status = ChannelStatus.DISCONNECTED
        self.handlers.on_disconnect(reason)


class ChannelRecorder:
    """ChannelFactory that records every channel it builds."""

    def __init__(self, **channel_kwargs: Any) -> None:
        self.channel_kwargs = channel_kwargs
        self.channels: list[FakeChannel] = []

    def __call__(self) -> FakeChannel:
        channel = FakeChannel(**self.channel_kwargs)
        self.channels.append(channel)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]

    def live_count(self) -> int:
        return sum(1 for c in self.channels if c.live)


class FakePermission:
    """PermissionCapability with a scripted answer."""

    def __init__(self, result: PermissionResult = PermissionResult.GRANTED) -> None:
        self.result = result
        self.calls = 0
        self.release: asyncio.Event | None = None

    async def request_microphone(self) -> PermissionResult:
        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        return self.result


class LogCapture:
    """Drop-in replacement for a module's log_event."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []

    def __call__(self, event: dict[str, Any]) -> None:
        self.events.append(dict(event))

    def decisions(self) -> list[str]:
        return [e["decision"] for e in self.events if "decision" in e]
