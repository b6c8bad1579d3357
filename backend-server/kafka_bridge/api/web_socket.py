"""WebSocket endpoint relaying between browser clients and Kafka.

The browser client connects to the server root; ``/ws`` is an alias.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket

from kafka_bridge.ws.bridge import Bridge

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/")
@router.websocket("/ws")
async def stream_handler(ws: WebSocket) -> None:
    bridge: Bridge = ws.app.state.bridge
    await bridge.open(ws)
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")
            await bridge.handle_client_message(ws, raw)
    except Exception:
        logger.exception("websocket error")
    finally:
        await bridge.close(ws)
