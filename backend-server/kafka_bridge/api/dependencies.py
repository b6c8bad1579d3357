"""FastAPI dependencies resolving the per-application collaborators."""
from fastapi import HTTPException, Request, status

from kafka_bridge.services.kafka_service import KafkaService
from kafka_bridge.services.metrics import BridgeMetrics
from kafka_bridge.ws.bridge import Bridge
from kafka_bridge.ws.manager import WSManager


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{name} not initialized")
    return value


def get_kafka(request: Request) -> KafkaService:
    return _state(request, "kafka")


def get_ws_manager(request: Request) -> WSManager:
    return _state(request, "ws_manager")


def get_bridge(request: Request) -> Bridge:
    return _state(request, "bridge")


def get_metrics(request: Request) -> BridgeMetrics:
    return _state(request, "metrics")
