# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
import struct
from typing import Any

import pytest

import session.gateway as gateway_mod
from constants import AUDIO_BYTES_PER_FRAME_PCM, S2C_FRAME_BYTES_TOTAL
from session.gateway import SessionGateway
from session.permission import PermissionResult
from session.status import SessionStatus
from session.surface import AssistantSurface

from fakes import ChannelRecorder, FakePermission, LogCapture, make_config


@pytest.fixture
def gateway_log(monkeypatch: pytest.MonkeyPatch) -> LogCapture:
    capture = LogCapture()
    monkeypatch.setattr(gateway_mod, "log_event", capture)
    return capture


def make_gateway(
    channels: ChannelRecorder,
    permission: FakePermission | None = None,
) -> SessionGateway:
    return SessionGateway(
        config=make_config(),
        channel_factory=channels,
        permission_capability=permission,
    )


def drain(surface: AssistantSurface) -> list[Any]:
    items: list[Any] = []
    while not surface.outbound.empty():
        items.append(surface.outbound.get_nowait())
    return items


def snapshots(items: list[Any]) -> list[dict[str, Any]]:
    return [i for i in items if isinstance(i, dict) and i["type"] == "SNAPSHOT"]


async def send(gw: SessionGateway, msg: dict[str, Any]) -> None:
    await gw.on_json_message(json.dumps(msg))
    assert gw.surface is not None
    await gw.surface.coordinator.settle()


def mic_frame(seq: int) -> bytes:
    return struct.pack("<I", seq) + bytes(AUDIO_BYTES_PER_FRAME_PCM)


# ---------------------------------------------------------------------
# Mount / unmount
# ---------------------------------------------------------------------

def test_connect_sends_session_init_then_snapshot() -> None:
    async def scenario() -> tuple[dict[str, Any], ...]:
        gw = make_gateway(ChannelRecorder(), FakePermission())
        result = await gw.on_ws_connect(language="es")
        await gw.on_ws_disconnect()
        return result.outbound_json

    init, snap = asyncio.run(scenario())
    assert init["type"] == "SESSION_INIT"
    assert init["language"] == "es"
    assert init["audio_format"]["sample_rate_hz"] == 16000
    assert snap["type"] == "SNAPSHOT"
    assert snap["mode"] == "voice"
    assert snap["status"] == "idle"
    assert snap["messages"] == []
    assert snap["show_suggestions"] is False


def test_disconnect_tears_down_live_session() -> None:
    channels = ChannelRecorder()

    async def scenario() -> SessionGateway:
        gw = make_gateway(channels, FakePermission())
        await gw.on_ws_connect()
        await send(gw, {"type": "TOGGLE_VOICE"})
        assert channels.live_count() == 1

        await gw.on_ws_disconnect(reason="client_disconnect")
        return gw

    gw = asyncio.run(scenario())
    assert gw.surface is None
    assert channels.live_count() == 0
    assert channels.last.end_calls == 1


# ---------------------------------------------------------------------
# Control messages
# ---------------------------------------------------------------------

def test_toggle_voice_publishes_connected_snapshot() -> None:
    channels = ChannelRecorder()

    async def scenario() -> list[Any]:
        gw = make_gateway(channels, FakePermission())
        await gw.on_ws_connect()
        await send(gw, {"type": "TOGGLE_VOICE", "ts_ms": 5})
        assert gw.surface is not None
        items = drain(gw.surface)
        await gw.on_ws_disconnect()
        return items

    items = asyncio.run(scenario())
    statuses = [s["status"] for s in snapshots(items)]
    assert "connecting" in statuses
    assert statuses[-1] == "connected"
    assert snapshots(items)[-1]["volume"] == 1.0


def test_host_permission_round_trip() -> None:
    channels = ChannelRecorder()

    async def scenario() -> SessionStatus:
        gw = SessionGateway(config=make_config(), channel_factory=channels)
        await gw.on_ws_connect()
        surface = gw.surface
        assert surface is not None

        await gw.on_json_message(json.dumps({"type": "TOGGLE_VOICE"}))
        requested = False
        for _ in range(50):
            await asyncio.sleep(0)
            if any(isinstance(i, dict) and i["type"] == "MIC_PERMISSION_REQUEST" for i in drain(surface)):
                requested = True
                break
        assert requested
        assert surface.session.status is SessionStatus.CONNECTING

        await send(gw, {"type": "MIC_PERMISSION", "result": "granted"})
        status = surface.session.status
        await gw.on_ws_disconnect()
        return status

    assert asyncio.run(scenario()) is SessionStatus.CONNECTED
    assert len(channels.channels) == 1


def test_permission_denied_emits_notice() -> None:
    async def scenario() -> list[Any]:
        gw = make_gateway(ChannelRecorder(), FakePermission(PermissionResult.DENIED))
        await gw.on_ws_connect()
        await send(gw, {"type": "TOGGLE_VOICE"})
        assert gw.surface is not None
        items = drain(gw.surface)
        await gw.on_ws_disconnect()
        return items

    items = asyncio.run(scenario())
    notices = [i for i in items if isinstance(i, dict) and i["type"] == "NOTICE"]
    assert len(notices) == 1
    assert notices[0]["kind"] == "permission_denied"
    assert notices[0]["retriable"] is True
    assert notices[0]["message"].startswith("Microphone access is required")
    assert snapshots(items)[-1]["last_error"] == "permission_denied"


def test_pick_suggestion_resolves_prompt_in_surface_language() -> None:
    channels = ChannelRecorder()

    async def scenario() -> tuple[dict[str, Any], dict[str, Any]]:
        gw = make_gateway(channels)
        await gw.on_ws_connect(language="es")
        await send(gw, {"type": "SWITCH_TO_TEXT"})
        channels.last.agent_says("[calm] Hola, soy Hope.")

        assert gw.surface is not None
        before = gw.surface.snapshot()
        await send(gw, {"type": "PICK_SUGGESTION", "index": 2})
        after = gw.surface.snapshot()
        await gw.on_ws_disconnect()
        return before, after

    before, after = asyncio.run(scenario())
    assert before["mode"] == "text"
    assert before["show_suggestions"] is True
    assert before["suggestions"][2] == "Necesito ayuda medica"
    assert before["messages"] == [{"role": "agent", "text": "Hola, soy Hope.", "sequence_index": 0}]

    assert channels.last.sent_text == ["Necesito ayuda medica"]
    assert after["show_suggestions"] is False
    assert after["suggestions"] == []
    assert after["messages"][-1]["role"] == "user"


def test_set_language_bypasses_the_action_queue() -> None:
    async def scenario() -> str:
        gw = make_gateway(ChannelRecorder())
        await gw.on_ws_connect()
        await gw.on_json_message(json.dumps({"type": "SET_LANGUAGE", "language": "es"}))
        assert gw.surface is not None
        language = gw.surface.language.value
        await gw.on_ws_disconnect()
        return language

    assert asyncio.run(scenario()) == "es"


@pytest.mark.parametrize(
    "payload, event_type",
    [
        ("{not json", "JSON_DECODE_ERROR"),
        ("[1, 2]", "JSON_NOT_AN_OBJECT"),
        (json.dumps({"type": "DANCE"}), "UNKNOWN_MESSAGE_TYPE"),
        (json.dumps({"type": "SEND_TEXT"}), "INVALID_MESSAGE"),
        (json.dumps({"type": "PICK_SUGGESTION", "index": 99}), "INVALID_MESSAGE"),
        (json.dumps({"type": "PICK_SUGGESTION", "index": "0"}), "INVALID_MESSAGE"),
    ],
)
def test_bad_messages_are_logged_and_dropped(
    gateway_log: LogCapture,
    payload: str,
    event_type: str,
) -> None:
    async def scenario() -> SessionStatus:
        gw = make_gateway(ChannelRecorder())
        await gw.on_ws_connect()
        await gw.on_json_message(payload)
        assert gw.surface is not None
        await gw.surface.coordinator.settle()
        status = gw.surface.session.status
        await gw.on_ws_disconnect()
        return status

    assert asyncio.run(scenario()) is SessionStatus.IDLE
    assert any(e["event_type"] == event_type for e in gateway_log.events)


def test_message_before_connect_is_logged(gateway_log: LogCapture) -> None:
    gw = make_gateway(ChannelRecorder())

    asyncio.run(gw.on_json_message(json.dumps({"type": "TOGGLE_VOICE"})))

    assert gateway_log.events[0]["event_type"] == "MESSAGE_WITHOUT_SESSION"


# ---------------------------------------------------------------------
# Binary audio
# ---------------------------------------------------------------------

def test_mic_frames_forwarded_with_gap_detection(gateway_log: LogCapture) -> None:
    channels = ChannelRecorder()

    async def scenario() -> None:
        gw = make_gateway(channels, FakePermission())
        await gw.on_ws_connect()
        await send(gw, {"type": "TOGGLE_VOICE"})

        await gw.on_binary_message(mic_frame(1))
        await gw.on_binary_message(mic_frame(4))
        await gw.on_binary_message(b"\x01\x00\x00\x00short")
        await gw.on_ws_disconnect()

    asyncio.run(scenario())
    assert len(channels.last.sent_audio) == 2

    gaps = [e for e in gateway_log.events if e["event_type"] == "SEQ_GAP_DETECTED"]
    assert len(gaps) == 1
    assert gaps[0]["expected"] == 2
    assert gaps[0]["actual"] == 4
    assert gaps[0]["gap_size"] == 2
    assert any(e["event_type"] == "BINARY_DECODE_ERROR" for e in gateway_log.events)


def test_mic_frames_dropped_while_idle() -> None:
    channels = ChannelRecorder()

    async def scenario() -> None:
        gw = make_gateway(channels, FakePermission())
        await gw.on_ws_connect()
        await gw.on_binary_message(mic_frame(1))
        await gw.on_ws_disconnect()

    asyncio.run(scenario())
    assert channels.channels == []


def test_agent_audio_framed_with_generation() -> None:
    channels = ChannelRecorder()

    async def scenario() -> tuple[list[bytes], int, int]:
        gw = make_gateway(channels, FakePermission())
        await gw.on_ws_connect()
        await send(gw, {"type": "TOGGLE_VOICE"})
        surface = gw.surface
        assert surface is not None
        drain(surface)

        handlers = channels.last.handlers
        assert handlers is not None
        handlers.on_audio(bytes(AUDIO_BYTES_PER_FRAME_PCM + 60))
        handlers.on_audio(bytes(AUDIO_BYTES_PER_FRAME_PCM - 60))

        frames = [i for i in drain(surface) if isinstance(i, bytes)]
        generation = surface.controller.generation
        pending = surface._audio_aligner.pending_bytes  # pylint: disable=protected-access
        await gw.on_ws_disconnect()
        return frames, generation, pending

    frames, generation, pending = asyncio.run(scenario())
    assert len(frames) == 2
    assert pending == 0
    for expected_seq, frame in enumerate(frames, start=1):
        assert len(frame) == S2C_FRAME_BYTES_TOTAL
        seq, gen = struct.unpack_from("<II", frame, 0)
        assert seq == expected_seq
        assert gen == generation
