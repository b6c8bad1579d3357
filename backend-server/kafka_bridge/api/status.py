from __future__ import annotations

import datetime as dt
import time

from fastapi import APIRouter, Depends, Request

from kafka_bridge.api.dependencies import get_kafka, get_ws_manager
from kafka_bridge.services.kafka_service import KafkaService
from kafka_bridge.ws.manager import WSManager

router = APIRouter(tags=["status"])


def _iso_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


@router.get("/")
def root():
    return {"message": "Kafka Bridge Server", "status": "running", "timestamp": _iso_now()}


@router.get("/health")
def health(request: Request):
    started = getattr(request.app.state, "started_at", None) or time.monotonic()
    return {
        "status": "healthy",
        "uptime": round(time.monotonic() - started, 3),
        "timestamp": _iso_now(),
    }


@router.get("/api/status")
def api_status(
    kafka: KafkaService = Depends(get_kafka),
    ws_manager: WSManager = Depends(get_ws_manager),
):
    """Connection summary. Topic listing degrades to [] when Kafka is down."""
    return {
        "server": "online",
        "websocket": "connected",
        "clients": ws_manager.count,
        "kafka": {
            "connected": kafka.is_connected,
            "topics": kafka.list_topics(),
            "consumerGroups": kafka.consumer_groups(),
        },
    }
