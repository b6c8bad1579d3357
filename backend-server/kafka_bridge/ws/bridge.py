"""Fan-out between Kafka and the WebSocket clients.

Client frames are echoed, broadcast to the other clients and, when they name
a topic, published to Kafka. Records delivered by the broadcast consumer group
are pushed to every open connection, the publisher included.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import datetime as dt
import json
import logging
from typing import Any, Optional

from fastapi import WebSocket

from kafka_bridge.core.exceptions import EnvelopeParseError, PublishError
from kafka_bridge.models.messages import BrokerRecord
from kafka_bridge.models.ws_events import ClientEnvelope, EnvelopeType
from kafka_bridge.services.kafka_service import KafkaService
from kafka_bridge.services.metrics import BridgeMetrics
from kafka_bridge.ws.manager import WSManager

logger = logging.getLogger(__name__)

WS_SENDER = "websocket-client"


def parse_client_frame(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise EnvelopeParseError(str(exc)) from exc


class Bridge:
    def __init__(
        self,
        kafka: KafkaService,
        manager: WSManager,
        metrics: Optional[BridgeMetrics] = None,
        forward_timeout: float = 30.0,
    ) -> None:
        self.kafka = kafka
        self.manager = manager
        self.metrics = metrics or BridgeMetrics()
        self.metrics.track_connections(manager)
        self._forward_timeout = forward_timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Event loop that broker records are handed over to."""
        self._loop = loop

    # ------------------------------------------------------------------ #
    # connection lifecycle                                               #
    # ------------------------------------------------------------------ #
    async def open(self, ws: WebSocket) -> None:
        await self.manager.connect(ws)
        logger.info("websocket client connected (%d open)", self.manager.count)
        await self._reply(ws, ClientEnvelope.welcome())

    async def close(self, ws: WebSocket) -> None:
        if await self.manager.disconnect(ws):
            logger.info("websocket client disconnected (%d open)", self.manager.count)

    # ------------------------------------------------------------------ #
    # client -> kafka / other clients                                    #
    # ------------------------------------------------------------------ #
    async def handle_client_message(self, ws: WebSocket, raw: str) -> None:
        try:
            payload = parse_client_frame(raw)
        except EnvelopeParseError as exc:
            logger.debug("invalid JSON from websocket client: %s", exc)
            self.metrics.client_message("parse_error")
            await self._reply(ws, ClientEnvelope.parse_error())
            return
        self.metrics.client_message("ok")

        topic = payload.get("topic") if isinstance(payload, dict) else None
        if isinstance(topic, str) and topic and self.kafka.is_connected:
            await self._publish_for_client(ws, topic, payload)

        await self._reply(ws, ClientEnvelope.echo(payload))

        delivered = await self.manager.broadcast(ClientEnvelope.broadcast(payload), exclude=ws)
        self.metrics.envelope_sent(EnvelopeType.BROADCAST.value, delivered)

    async def _publish_for_client(self, ws: WebSocket, topic: str, payload: dict) -> None:
        content = {
            "content": payload.get("message"),
            "sender": WS_SENDER,
            "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        }
        try:
            await asyncio.to_thread(self.kafka.publish, topic, content)
        except PublishError as exc:
            logger.warning("%s", exc)
            self.metrics.publish("websocket", ok=False)
            await self._reply(ws, ClientEnvelope.broker_error(payload, topic))
            return
        self.metrics.publish("websocket", ok=True)
        await self._reply(ws, ClientEnvelope.broker_sent(payload, topic))

    # ------------------------------------------------------------------ #
    # kafka -> clients                                                   #
    # ------------------------------------------------------------------ #
    def on_broker_record(self, record: BrokerRecord) -> None:
        """
        Consumer-thread callback. Blocks until the record has been fanned out
        so records reach clients in the order Kafka delivered them.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("no running event loop; dropping record %s@%s", record.topic, record.offset)
            self.metrics.record_dropped("no_loop")
            return
        future = asyncio.run_coroutine_threadsafe(self.forward_record(record), loop)
        try:
            future.result(timeout=self._forward_timeout)
        except concurrent.futures.TimeoutError:
            # the next record must not overlap this fan-out
            future.cancel()
            logger.warning(
                "fan-out of %s@%s took longer than %.1fs; cancelled",
                record.topic, record.offset, self._forward_timeout,
            )
            self.metrics.record_dropped("timeout")

    async def forward_record(self, record: BrokerRecord) -> int:
        delivered = await self.manager.broadcast(ClientEnvelope.broker_message(record))
        self.metrics.record_forwarded(record.topic)
        self.metrics.envelope_sent(EnvelopeType.BROKER_MESSAGE.value, delivered)
        return delivered

    # ------------------------------------------------------------------ #
    # helpers                                                            #
    # ------------------------------------------------------------------ #
    async def _reply(self, ws: WebSocket, envelope: ClientEnvelope) -> None:
        if await self.manager.send(ws, envelope):
            self.metrics.envelope_sent(envelope.type.value)
