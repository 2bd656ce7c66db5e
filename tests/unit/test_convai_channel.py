# pylint: disable=missing-module-docstring,missing-function-docstring,protected-access

import asyncio
import base64
import json
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosedOK

import adapters.channel.elevenlabs_convai as convai_mod
from adapters.channel.base import (
    ChannelClosedError,
    ChannelConnectError,
    ChannelHandlers,
    ChannelStatus,
)
from adapters.channel.elevenlabs_convai import ElevenLabsConvAIChannel, _parse_sample_rate

from fakes import LogCapture


@pytest.fixture(autouse=True)
def _quiet_logs(monkeypatch: pytest.MonkeyPatch) -> LogCapture:
    capture = LogCapture()
    monkeypatch.setattr(convai_mod, "log_event", capture)
    return capture


class FakeSocket:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))


class Recorder:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []
        self.errors: list[str] = []
        self.speaking: list[bool] = []
        self.audio: list[bytes] = []
        self.disconnects: list[str | None] = []

    def handlers(self) -> ChannelHandlers:
        return ChannelHandlers(
            on_message=lambda role, text: self.messages.append((role, text)),
            on_error=self.errors.append,
            on_speaking=self.speaking.append,
            on_audio=self.audio.append,
            on_disconnect=self.disconnects.append,
        )


def make_channel(recorder: Recorder) -> ElevenLabsConvAIChannel:
    channel = ElevenLabsConvAIChannel(session_id="sess_test")
    channel._handlers = recorder.handlers()
    return channel


def test_parse_sample_rate() -> None:
    assert _parse_sample_rate("pcm_24000") == 24000
    assert _parse_sample_rate("ulaw_8000") == 16000
    assert _parse_sample_rate(None) == 16000


def test_transcript_messages_reach_handlers() -> None:
    recorder = Recorder()
    channel = make_channel(recorder)
    ws = FakeSocket()

    async def scenario() -> None:
        await channel._handle_message(ws, {
            "type": "agent_response",
            "agent_response_event": {"agent_response": "[warm] Hi, I'm Hope."},
        })
        await channel._handle_message(ws, {
            "type": "user_transcript",
            "user_transcription_event": {"user_transcript": "I need food"},
        })

    asyncio.run(scenario())
    assert recorder.messages == [("agent", "[warm] Hi, I'm Hope."), ("user", "I need food")]


def test_ping_is_answered_with_pong() -> None:
    channel = make_channel(Recorder())
    ws = FakeSocket()

    asyncio.run(channel._handle_message(ws, {"type": "ping", "ping_event": {"event_id": 7}}))

    assert ws.sent == [{"type": "pong", "event_id": 7}]


def test_audio_sets_speaking_and_respects_volume() -> None:
    recorder = Recorder()
    channel = make_channel(recorder)
    pcm = (1000).to_bytes(2, "little", signed=True) * 4
    frame = {"type": "audio", "audio_event": {"audio_base_64": base64.b64encode(pcm).decode()}}

    async def scenario() -> None:
        await channel._handle_message(FakeSocket(), frame)
        channel.set_volume(0.0)
        await channel._handle_message(FakeSocket(), frame)
        await channel._handle_message(FakeSocket(), {"type": "interruption"})

    asyncio.run(scenario())
    assert recorder.audio == [pcm]
    assert recorder.speaking == [True, False]
    assert channel.is_speaking is False


def test_server_error_is_reported() -> None:
    recorder = Recorder()
    channel = make_channel(recorder)

    asyncio.run(channel._handle_message(FakeSocket(), {"type": "error", "message": "quota"}))

    assert recorder.errors == ["convai_error: quota"]


def test_sends_require_a_connected_channel() -> None:
    channel = ElevenLabsConvAIChannel(session_id="sess_test")

    with pytest.raises(ChannelClosedError):
        channel.send_user_message("hello")


def test_only_websocket_transport_is_supported() -> None:
    channel = ElevenLabsConvAIChannel(session_id="sess_test")

    with pytest.raises(ChannelConnectError):
        asyncio.run(channel.start_session(
            agent_id="agent_test",
            transport="webrtc",
            handlers=Recorder().handlers(),
        ))


def test_public_agent_url_carries_agent_id() -> None:
    channel = ElevenLabsConvAIChannel(session_id="sess_test", base_url="wss://example.invalid/convai")

    url = asyncio.run(channel._resolve_url("agent_123"))

    assert url == "wss://example.invalid/convai?agent_id=agent_123"


# ---------------------------------------------------------------------
# Connection lifecycle against a scripted socket
# ---------------------------------------------------------------------

HANDSHAKE = {
    "type": "conversation_initiation_metadata",
    "conversation_initiation_metadata_event": {
        "conversation_id": "conv_1",
        "agent_output_audio_format": "pcm_16000",
    },
}


class ScriptedSocket:
    """Stands in for a websockets ClientConnection; None in the inbox means closed."""

    def __init__(self, *frames: dict[str, Any]) -> None:
        self.inbox: asyncio.Queue[str | None] = asyncio.Queue()
        for frame in frames:
            self.inbox.put_nowait(json.dumps(frame))
        self.sent: list[dict[str, Any]] = []
        self.close_calls = 0

    def server_close(self) -> None:
        self.inbox.put_nowait(None)

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    async def recv(self) -> str:
        raw = await self.inbox.get()
        if raw is None:
            raise ConnectionClosedOK(None, None)
        return raw

    def __aiter__(self) -> "ScriptedSocket":
        return self

    async def __anext__(self) -> str:
        raw = await self.inbox.get()
        if raw is None:
            raise StopAsyncIteration
        return raw

    async def close(self) -> None:
        self.close_calls += 1
        self.inbox.put_nowait(None)


def patch_connect(monkeypatch: pytest.MonkeyPatch, ws: ScriptedSocket) -> list[str]:
    urls: list[str] = []

    async def fake_connect(url: str, **_kwargs: Any) -> ScriptedSocket:
        urls.append(url)
        return ws

    monkeypatch.setattr(convai_mod, "ws_connect", fake_connect)
    return urls


async def settle_until(predicate, *, rounds: int = 20) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)


def new_channel() -> ElevenLabsConvAIChannel:
    return ElevenLabsConvAIChannel(session_id="sess_test", base_url="wss://example.invalid/convai")


def test_handshake_connects_and_writer_sends_messages(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = Recorder()
    channel = new_channel()

    async def scenario() -> tuple[ScriptedSocket, list[str]]:
        ws = ScriptedSocket(
            {"type": "ping", "ping_event": {"event_id": 1}},
            HANDSHAKE,
        )
        urls = patch_connect(monkeypatch, ws)

        await channel.start_session(
            agent_id="agent_test",
            transport="websocket",
            handlers=recorder.handlers(),
        )
        assert channel.status is ChannelStatus.CONNECTED

        channel.send_user_message("hello")
        await settle_until(lambda: len(ws.sent) == 3)
        await channel.end_session()
        return ws, urls

    ws, urls = asyncio.run(scenario())
    assert urls == ["wss://example.invalid/convai?agent_id=agent_test"]
    assert channel.conversation_id == "conv_1"
    assert ws.sent == [
        {"type": "conversation_initiation_client_data"},
        {"type": "pong", "event_id": 1},
        {"type": "user_message", "text": "hello"},
    ]
    assert recorder.disconnects == []


def test_close_during_handshake_fails_the_connect(monkeypatch: pytest.MonkeyPatch) -> None:
    channel = new_channel()

    async def scenario() -> ScriptedSocket:
        ws = ScriptedSocket()
        ws.server_close()
        patch_connect(monkeypatch, ws)

        with pytest.raises(ChannelConnectError):
            await channel.start_session(
                agent_id="agent_test",
                transport="websocket",
                handlers=Recorder().handlers(),
            )
        return ws

    ws = asyncio.run(scenario())
    assert channel.status is ChannelStatus.DISCONNECTED
    assert ws.close_calls == 1


def test_server_close_reports_disconnect_once(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = Recorder()
    channel = new_channel()

    async def scenario() -> ScriptedSocket:
        ws = ScriptedSocket(HANDSHAKE)
        patch_connect(monkeypatch, ws)
        await channel.start_session(
            agent_id="agent_test",
            transport="websocket",
            handlers=recorder.handlers(),
        )

        ws.server_close()
        await settle_until(lambda: recorder.disconnects)
        await channel.end_session()
        await asyncio.sleep(0)
        return ws

    ws = asyncio.run(scenario())
    assert recorder.disconnects == [None]
    assert channel.status is ChannelStatus.DISCONNECTED
    assert ws.close_calls == 1


def test_end_session_is_idempotent(monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = Recorder()
    channel = new_channel()

    async def scenario() -> ScriptedSocket:
        ws = ScriptedSocket(HANDSHAKE)
        patch_connect(monkeypatch, ws)
        await channel.start_session(
            agent_id="agent_test",
            transport="websocket",
            handlers=recorder.handlers(),
        )
        await asyncio.sleep(0)

        await channel.end_session()
        await channel.end_session()
        await asyncio.sleep(0)
        return ws

    ws = asyncio.run(scenario())
    assert ws.close_calls == 1
    assert recorder.disconnects == []
    assert channel.status is ChannelStatus.DISCONNECTED
    with pytest.raises(ChannelClosedError):
        channel.send_user_message("late")
