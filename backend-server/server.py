# server.py
import asyncio
import contextlib
import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kafka_bridge.api import kafka as kafka_router
from kafka_bridge.api import status as status_router
from kafka_bridge.api import web_socket as ws_router
from kafka_bridge.core.config import Settings, get_settings
from kafka_bridge.core.errors import install_exception_handlers
from kafka_bridge.core.exceptions import BrokerError
from kafka_bridge.core.log_config import setup_logging
from kafka_bridge.services.kafka_service import KafkaService
from kafka_bridge.services.metrics import BridgeMetrics
from kafka_bridge.ws.bridge import Bridge
from kafka_bridge.ws.manager import WSManager

logger = logging.getLogger("kafka_bridge.server")


async def start_broker(kafka: KafkaService, bridge: Bridge, settings: Settings) -> bool:
    """
    Connect to Kafka, create the default topics and start the broadcast
    consumer group. Failures leave the gateway running without Kafka.
    """
    try:
        await asyncio.to_thread(kafka.connect)
        for topic, partitions in settings.default_topics.items():
            await asyncio.to_thread(kafka.ensure_topic, topic, partitions)
        await asyncio.to_thread(
            kafka.register_consumer,
            settings.broadcast_group_id,
            list(settings.default_topics),
            bridge.on_broker_record,
        )
    except BrokerError as exc:
        logger.warning("Kafka connection failed, continuing without Kafka: %s", exc)
        return False
    logger.info("Kafka service initialized and consumers started")
    return True


def create_app(
    settings: Optional[Settings] = None,
    kafka: Optional[KafkaService] = None,
) -> FastAPI:
    settings = settings or get_settings()

    # Lifespan handler replaces @app.on_event("startup"/"shutdown")
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.started_at = time.monotonic()
        app.state.settings = settings
        app.state.kafka = kafka or KafkaService(settings)
        app.state.ws_manager = WSManager()
        app.state.metrics = BridgeMetrics()
        app.state.bridge = Bridge(app.state.kafka, app.state.ws_manager, app.state.metrics)
        app.state.bridge.bind_loop(asyncio.get_running_loop())

        # Kafka comes up in the background so HTTP/WS are served right away
        broker_task = asyncio.create_task(start_broker(app.state.kafka, app.state.bridge, settings))
        app.state.broker_task = broker_task

        try:
            yield
        finally:
            if not broker_task.done():
                broker_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await broker_task
            await asyncio.to_thread(app.state.kafka.disconnect)
            logger.info("Server closed")

    app = FastAPI(title="Kafka Bridge", version="1.0.0", lifespan=lifespan)

    allow_origins = settings.cors_allow_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials="*" not in allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_exception_handlers(app)

    app.include_router(status_router.router)
    app.include_router(kafka_router.router)
    app.include_router(ws_router.router)

    if settings.metrics_enabled:
        from kafka_bridge.api import metrics as metrics_router
        # metrics lives at /metrics (Prometheus convention)
        app.include_router(metrics_router.router)

    return app


class GatewayServer(uvicorn.Server):
    """Disconnects Kafka before uvicorn closes the listening socket."""

    def __init__(self, config: uvicorn.Config, app: FastAPI) -> None:
        super().__init__(config)
        self._app = app

    async def shutdown(self, sockets=None) -> None:
        logger.info("Shutting down gracefully...")
        kafka = getattr(self._app.state, "kafka", None)
        if kafka is not None:
            try:
                await asyncio.to_thread(kafka.disconnect)
            except Exception:
                logger.exception("Error disconnecting Kafka")
        await super().shutdown(sockets=sockets)


def main() -> int:
    settings = get_settings()
    setup_logging(settings.log_level)
    app = create_app(settings)
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    server = GatewayServer(config, app)
    logger.info("Server starting on port %d (WebSocket on ws://%s:%d/)", settings.port, settings.host, settings.port)
    # uvicorn exits with status 1 itself when the socket cannot be bound
    server.run()
    return 0


app = create_app()


if __name__ == "__main__":
    sys.exit(main())
