"""
Route registration for the voice session API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire gateway to WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.gateway import GatewayResult, SessionGateway


# Close code sent when the single client slot is taken
WS_CLOSE_SLOT_TAKEN = 4409


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/health")
    async def health() -> dict[str, str]:  # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/status")
    async def status() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        gateway: SessionGateway = app.state.gateway
        if gateway.session is None:
            return {}
        return gateway.session.status

    @app.get("/messages")
    async def messages() -> list[dict[str, str]]:  # pyright: ignore[reportUnusedFunction]
        gateway: SessionGateway = app.state.gateway
        if gateway.session is None:
            return []
        return gateway.session.chat_log.serialize()

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None:  # pyright: ignore[reportUnusedFunction]
        """
        UI client endpoint.

        One process = one voice session; at most one client attached.
        Inbound JSON becomes controller events, outbound STATUS / MESSAGE
        updates are pushed by a pump task.
        """
        await ws.accept()

        gateway: SessionGateway = app.state.gateway

        result = gateway.on_ws_connect()
        if not result.accepted:
            await ws.close(code=WS_CLOSE_SLOT_TAKEN)
            return

        pump: asyncio.Task[None] | None = None
        try:
            # ---- CONNECT ----
            await _flush_gateway_result(ws, result)
            pump = asyncio.create_task(_pump_outbound(ws, gateway))

            # ---- MAIN LOOP ----
            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.receive":
                    if msg.get("text") is not None:
                        await gateway.on_json_message(msg["text"])

                elif msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect()

        except WebSocketDisconnect:
            gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            gateway.on_ws_disconnect(reason="server_error")

        finally:
            if pump is not None:
                pump.cancel()
                await asyncio.gather(pump, return_exceptions=True)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    """Send all outbound messages produced by gateway."""
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg))


async def _pump_outbound(ws: WebSocket, gateway: SessionGateway) -> None:
    """Forward STATUS / MESSAGE updates to the client in FIFO order."""
    while True:
        batch = await gateway.next_outbound()
        for msg in batch:
            await ws.send_text(json.dumps(msg))
