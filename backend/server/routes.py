"""
Route registration for the assistant API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Drain the surface outbound queue onto the WebSocket
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event, now_ms
from session.gateway import GatewayResult, SessionGateway
from session.surface import AssistantSurface


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = SessionGateway(
            config=app.state.config,
            channel_factory=getattr(app.state, "channel_factory", None),
        )
        sender: asyncio.Task[None] | None = None

        try:
            result = await gateway.on_ws_connect(language=ws.query_params.get("lang"))
            await _flush_gateway_result(ws, result)

            assert gateway.surface is not None
            sender = asyncio.create_task(_send_outbound(ws, gateway.surface))

            while True:
                msg = await ws.receive()

                if msg.get("type") == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    result = await gateway.on_json_message(msg["text"])
                    await _flush_gateway_result(ws, result)

                elif msg.get("bytes") is not None:
                    result = await gateway.on_binary_message(msg["bytes"])
                    await _flush_gateway_result(ws, result)

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.surface.session_id if gateway.surface else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")

        finally:
            if sender is not None:
                sender.cancel()
                await asyncio.gather(sender, return_exceptions=True)


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg))


async def _send_outbound(ws: WebSocket, surface: AssistantSurface) -> None:
    """Forward queued JSON and agent audio frames in order."""
    while True:
        item = await surface.outbound.get()
        try:
            if isinstance(item, bytes):
                await ws.send_bytes(item)
            else:
                await ws.send_text(json.dumps(item))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Socket is gone; the receive loop will see the disconnect.
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_SEND_FAILED",
                "session_id": surface.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return
