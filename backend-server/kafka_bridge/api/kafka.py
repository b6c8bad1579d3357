# kafka_bridge/api/kafka.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from kafka_bridge.api.dependencies import get_kafka, get_metrics
from kafka_bridge.models.messages import CreateTopicRequest, SendMessageRequest
from kafka_bridge.services.kafka_service import KafkaService
from kafka_bridge.services.metrics import BridgeMetrics

router = APIRouter(prefix="/api/kafka", tags=["kafka"])


@router.post("/send")
def send_message(
    body: SendMessageRequest,
    kafka: KafkaService = Depends(get_kafka),
    metrics: BridgeMetrics = Depends(get_metrics),
):
    if body.message is None or body.message == "":
        raise ValueError("Topic and message are required")
    try:
        kafka.publish(body.topic, body.message, key=body.key)
    except Exception:
        metrics.publish("http", ok=False)
        raise
    metrics.publish("http", ok=True)
    return {"success": True, "message": "Message sent to Kafka"}


@router.get("/topics")
def list_topics(kafka: KafkaService = Depends(get_kafka)):
    return {"topics": kafka.list_topics()}


@router.post("/topics")
def create_topic(body: CreateTopicRequest, kafka: KafkaService = Depends(get_kafka)):
    created = kafka.ensure_topic(body.topic, body.partitions)
    return {
        "success": True,
        "message": f'Topic "{body.topic}" created or already exists',
        "created": created,
    }
