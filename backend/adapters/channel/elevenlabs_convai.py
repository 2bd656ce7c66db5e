"""
ElevenLabs Conversational AI channel.

One instance == one agent conversation over the ConvAI WebSocket.

Protocol (JSON text frames):
- client -> agent:
    conversation_initiation_client_data   (once, right after connect)
    user_message {text}
    user_audio_chunk (base64 PCM16 16kHz mono)
    pong {event_id}
- agent -> client:
    conversation_initiation_metadata      (handshake complete)
    agent_response                        -> on_message("agent", ...)
    user_transcript                       -> on_message("user", ...)
    audio (base64 PCM)                    -> on_audio(...), speaking indicator
    interruption                          -> speaking indicator off
    ping                                  -> answered with pong

Design constraints:
- Adapter must not own session status transitions.
- Outbound frames go through a single writer task so they stay ordered.
- The speaking indicator is derived from audio playout time: it turns on
  with the first audio chunk and off once the buffered audio would have
  finished playing (plus a short tail), or immediately on interruption.
"""

from __future__ import annotations

import asyncio
import base64
import json
import time
import urllib.parse
from typing import Any

from elevenlabs.client import AsyncElevenLabs
from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed

from adapters.channel.base import (
    ChannelClosedError,
    ChannelConnectError,
    ChannelHandlers,
    ChannelStatus,
    ConversationChannel,
)
from audio.pcm import pcm16_duration_s, scale_pcm16
from constants import (
    AUDIO_SAMPLE_RATE_HZ,
    CHANNEL_TRANSPORT_WEBSOCKET,
    CONVAI_BASE_URL,
    SPEAKING_TAIL_S,
)
from observability.logger import log_event, now_ms


def _parse_sample_rate(audio_format: Any) -> int:
    """'pcm_16000' -> 16000; anything unparseable -> default rate."""
    if isinstance(audio_format, str) and audio_format.startswith("pcm_"):
        try:
            return int(audio_format[len("pcm_"):])
        except ValueError:
            pass
    return AUDIO_SAMPLE_RATE_HZ


class ElevenLabsConvAIChannel(ConversationChannel):
    """
    ConvAI WebSocket channel.

    Public interface matches ConversationChannel:
    - start_session(): connect + handshake, then start reader/writer tasks
    - end_session(): idempotent graceful close
    - send_user_message()/send_user_audio(): queued, fire-and-forget
    - set_volume(): applied to inbound audio before on_audio
    """

    def __init__(
        self,
        *,
        session_id: str,
        base_url: str = CONVAI_BASE_URL,
        api_key: str | None = None,
    ) -> None:
        self._session_id = session_id
        self._base_url = base_url
        self._api_key = api_key

        self._ws: ClientConnection | None = None
        self._handlers: ChannelHandlers | None = None
        self._status = ChannelStatus.DISCONNECTED

        self._outbound: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None

        self._volume = 1.0
        self._output_sample_rate = AUDIO_SAMPLE_RATE_HZ
        self._conversation_id: str | None = None

        self._is_speaking = False
        self._playout_end = 0.0
        self._speaking_task: asyncio.Task[None] | None = None

        self._closing = False

    # -------------------------------------------------------------------------
    # ConversationChannel
    # -------------------------------------------------------------------------

    @property
    def status(self) -> ChannelStatus:
        return self._status

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    async def start_session(
        self,
        *,
        agent_id: str,
        transport: str,
        handlers: ChannelHandlers,
    ) -> None:
        if transport != CHANNEL_TRANSPORT_WEBSOCKET:
            raise ChannelConnectError(f"unsupported transport: {transport}")
        if self._status is not ChannelStatus.DISCONNECTED or self._closing:
            raise ChannelConnectError("channel instances are single-use")

        self._handlers = handlers
        self._status = ChannelStatus.CONNECTING

        try:
            url = await self._resolve_url(agent_id)
            self._ws = await ws_connect(url, max_size=2**22)
            await self._ws.send(json.dumps({"type": "conversation_initiation_client_data"}))
            await self._await_handshake(self._ws)
        except asyncio.CancelledError:
            await self._teardown()
            raise
        except ChannelConnectError:
            await self._teardown()
            raise
        except Exception as e:
            await self._teardown()
            raise ChannelConnectError(f"convai_connect_failed: {e!r}") from e

        if self._closing:
            # end_session() ran while the handshake was in flight.
            await self._teardown()
            raise ChannelClosedError("channel closed during handshake")

        self._status = ChannelStatus.CONNECTED
        self._reader_task = asyncio.create_task(self._recv_loop())
        self._writer_task = asyncio.create_task(self._send_loop())

        log_event({
            "ts_ms": now_ms(),
            "event_type": "convai_session_started",
            "session_id": self._session_id,
            "conversation_id": self._conversation_id,
            "output_sample_rate": self._output_sample_rate,
        })

    async def end_session(self) -> None:
        if self._closing or self._status is ChannelStatus.DISCONNECTED:
            return

        self._status = ChannelStatus.DISCONNECTING
        await self._teardown()

        log_event({
            "ts_ms": now_ms(),
            "event_type": "convai_session_ended",
            "session_id": self._session_id,
            "conversation_id": self._conversation_id,
        })

    def send_user_message(self, text: str) -> None:
        self._enqueue({"type": "user_message", "text": text})

    def send_user_audio(self, pcm_bytes: bytes) -> None:
        self._enqueue({
            "user_audio_chunk": base64.b64encode(pcm_bytes).decode("ascii"),
        })

    def set_volume(self, volume: float) -> None:
        self._volume = min(1.0, max(0.0, volume))

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def _resolve_url(self, agent_id: str) -> str:
        """Public agents connect by id; private agents need a signed URL."""
        if self._api_key:
            client = AsyncElevenLabs(api_key=self._api_key)
            response = await client.conversational_ai.conversations.get_signed_url(
                agent_id=agent_id,
            )
            return response.signed_url

        qs = urllib.parse.urlencode({"agent_id": agent_id})
        return f"{self._base_url}?{qs}"

    async def _await_handshake(self, ws: ClientConnection) -> None:
        """Consume frames until conversation_initiation_metadata arrives."""
        while True:
            raw = await ws.recv()
            data = self._decode(raw)
            if data is None:
                continue

            if data.get("type") == "conversation_initiation_metadata":
                meta = data.get("conversation_initiation_metadata_event") or {}
                self._conversation_id = meta.get("conversation_id")
                self._output_sample_rate = _parse_sample_rate(
                    meta.get("agent_output_audio_format")
                )
                if self._output_sample_rate != AUDIO_SAMPLE_RATE_HZ:
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "convai_output_rate_mismatch",
                        "session_id": self._session_id,
                        "output_sample_rate": self._output_sample_rate,
                    })
                return

            await self._handle_message(ws, data)

    def _enqueue(self, frame: dict[str, Any]) -> None:
        if self._status is not ChannelStatus.CONNECTED:
            raise ChannelClosedError("channel is not connected")
        self._outbound.put_nowait(frame)

    async def _teardown(self) -> None:
        """Stop tasks and close the socket. Safe to call more than once."""
        self._closing = True

        current = asyncio.current_task()
        for task in (self._reader_task, self._writer_task, self._speaking_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._reader_task = None
        self._writer_task = None
        self._speaking_task = None
        self._is_speaking = False

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "convai_close_failed",
                    "session_id": self._session_id,
                    "error": repr(e),
                })

        self._status = ChannelStatus.DISCONNECTED

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    async def _send_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return

        try:
            while True:
                frame = await self._outbound.get()
                await ws.send(json.dumps(frame))
        except asyncio.CancelledError:
            return
        except ConnectionClosed:
            # Reader observes the close and reports it.
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._emit_error(f"convai_send_failed: {e!r}")

    async def _recv_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return

        reason: str | None = None
        try:
            async for raw in ws:
                data = self._decode(raw)
                if data is not None:
                    await self._handle_message(ws, data)
        except asyncio.CancelledError:
            return
        except ConnectionClosed as e:
            reason = f"convai_connection_closed: {e!r}"
        except Exception as e:  # pylint: disable=broad-exception-caught
            reason = f"convai_recv_failed: {e!r}"
            self._emit_error(reason)

        if self._closing:
            return

        # Remote side closed on its own.
        self._reader_task = None
        await self._teardown()
        if self._handlers is not None:
            self._handlers.on_disconnect(reason)

    # -------------------------------------------------------------------------
    # Inbound message handling
    # -------------------------------------------------------------------------

    def _decode(self, raw: str | bytes) -> dict[str, Any] | None:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            self._emit_error(f"convai_bad_frame: {e!r}")
            return None
        if not isinstance(data, dict):
            return None
        return data

    async def _handle_message(self, ws: ClientConnection, data: dict[str, Any]) -> None:
        handlers = self._handlers
        if handlers is None:
            return

        msg_type = data.get("type")

        if msg_type == "agent_response":
            event = data.get("agent_response_event") or {}
            text = event.get("agent_response")
            if isinstance(text, str):
                handlers.on_message("agent", text)

        elif msg_type == "user_transcript":
            event = data.get("user_transcription_event") or {}
            text = event.get("user_transcript")
            if isinstance(text, str):
                handlers.on_message("user", text)

        elif msg_type == "audio":
            event = data.get("audio_event") or {}
            b64 = event.get("audio_base_64")
            if not isinstance(b64, str):
                return
            try:
                pcm = base64.b64decode(b64)
            except ValueError as e:
                self._emit_error(f"convai_bad_audio: {e!r}")
                return
            self._on_agent_audio(pcm)
            if self._volume > 0.0:
                handlers.on_audio(scale_pcm16(pcm, self._volume))

        elif msg_type == "interruption":
            self._set_speaking(False)

        elif msg_type == "ping":
            event = data.get("ping_event") or {}
            await ws.send(json.dumps({
                "type": "pong",
                "event_id": event.get("event_id"),
            }))

        elif msg_type == "error":
            self._emit_error(f"convai_error: {data.get('message') or data}")

        else:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "convai_message_ignored",
                "session_id": self._session_id,
                "msg_type": msg_type,
            })

    # -------------------------------------------------------------------------
    # Speaking indicator
    # -------------------------------------------------------------------------

    def _on_agent_audio(self, pcm: bytes) -> None:
        now = time.monotonic()
        self._playout_end = max(self._playout_end, now) + pcm16_duration_s(
            pcm, self._output_sample_rate
        )
        self._set_speaking(True)

        if self._speaking_task is None or self._speaking_task.done():
            self._speaking_task = asyncio.create_task(self._speaking_watch())

    async def _speaking_watch(self) -> None:
        try:
            while True:
                remaining = self._playout_end + SPEAKING_TAIL_S - time.monotonic()
                if remaining <= 0:
                    break
                await asyncio.sleep(remaining)
        except asyncio.CancelledError:
            return
        self._set_speaking(False)

    def _set_speaking(self, speaking: bool) -> None:
        if not speaking:
            self._playout_end = 0.0
            task = self._speaking_task
            if task is not None and task is not asyncio.current_task() and not task.done():
                task.cancel()
            self._speaking_task = None

        if speaking == self._is_speaking:
            return
        self._is_speaking = speaking
        if self._handlers is not None and not self._closing:
            self._handlers.on_speaking(speaking)

    def _emit_error(self, reason: str) -> None:
        if self._handlers is not None and not self._closing:
            self._handlers.on_error(reason)
