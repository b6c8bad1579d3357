from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from fastapi import WebSocket

from kafka_bridge.models.ws_events import ClientEnvelope

logger = logging.getLogger(__name__)


class WSManager:
    """Registry of open WebSocket connections with send/broadcast helpers."""

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.clients: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._send_timeout = send_timeout

    @property
    def count(self) -> int:
        return len(self.clients)

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            self.clients.add(ws)

    async def disconnect(self, ws: WebSocket) -> bool:
        """Forget *ws*. Returns False if it was already gone."""
        async with self._lock:
            if ws not in self.clients:
                return False
            self.clients.discard(ws)
            return True

    async def snapshot(self, exclude: Optional[WebSocket] = None) -> list[WebSocket]:
        async with self._lock:
            return [ws for ws in self.clients if ws is not exclude]

    async def send(self, ws: WebSocket, envelope: ClientEnvelope) -> bool:
        """Send one envelope. A connection that cannot be written to is dropped."""
        try:
            await asyncio.wait_for(ws.send_json(envelope.to_wire()), timeout=self._send_timeout)
            return True
        except Exception as exc:
            logger.debug("send to websocket failed, dropping it: %s", exc)
            await self.disconnect(ws)
            return False

    async def broadcast(self, envelope: ClientEnvelope, exclude: Optional[WebSocket] = None) -> int:
        """Send *envelope* to every open connection except *exclude*; returns how many got it."""
        delivered = 0
        for ws in await self.snapshot(exclude=exclude):
            if await self.send(ws, envelope):
                delivered += 1
        return delivered
