"""Prometheus counters describing what the bridge did.

Each application owns its own ``CollectorRegistry`` so several apps (tests)
can live in one process.
"""
from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class BridgeMetrics:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.connections = Gauge(
            "bridge_ws_connections", "Open WebSocket connections", registry=self.registry
        )
        self.envelopes_sent = Counter(
            "bridge_ws_envelopes_sent", "Envelopes sent to WebSocket clients", ["type"],
            registry=self.registry,
        )
        self.client_messages = Counter(
            "bridge_ws_client_messages", "Frames received from WebSocket clients", ["outcome"],
            registry=self.registry,
        )
        self.publishes = Counter(
            "bridge_kafka_publishes", "Publishes to Kafka", ["source", "outcome"],
            registry=self.registry,
        )
        self.records_forwarded = Counter(
            "bridge_kafka_records_forwarded", "Kafka records fanned out to WebSocket clients", ["topic"],
            registry=self.registry,
        )
        self.records_dropped = Counter(
            "bridge_kafka_records_dropped", "Kafka records that could not be fanned out", ["reason"],
            registry=self.registry,
        )

    # ---------- recording helpers ----------
    def track_connections(self, manager) -> None:
        """Report the size of *manager* whenever the gauge is collected."""
        self.connections.set_function(lambda: manager.count)

    def envelope_sent(self, type_: str, count: int = 1) -> None:
        if count:
            self.envelopes_sent.labels(type=type_).inc(count)

    def client_message(self, outcome: str) -> None:
        self.client_messages.labels(outcome=outcome).inc()

    def publish(self, source: str, ok: bool) -> None:
        self.publishes.labels(source=source, outcome="ok" if ok else "error").inc()

    def record_forwarded(self, topic: str) -> None:
        self.records_forwarded.labels(topic=topic).inc()

    def record_dropped(self, reason: str) -> None:
        self.records_dropped.labels(reason=reason).inc()

    def sample(self, name: str, **labels) -> float:
        """Current value of a sample, 0.0 if it was never recorded."""
        value = self.registry.get_sample_value(name, labels or None)
        return value or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
