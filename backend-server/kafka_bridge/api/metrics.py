from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST

from kafka_bridge.api.dependencies import get_metrics
from kafka_bridge.services.metrics import BridgeMetrics

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics(bridge_metrics: BridgeMetrics = Depends(get_metrics)):
    return Response(bridge_metrics.render(), media_type=CONTENT_TYPE_LATEST)
