"""
Pytest configuration and shared fixtures
"""
import threading
from typing import Any, List, Optional

import pytest

from kafka_bridge.core.config import Settings
from kafka_bridge.core.exceptions import AdminError, BrokerConnectionError, PublishError
from kafka_bridge.models.messages import BrokerRecord


class FakeWebSocket:
    """Records every JSON frame sent to it."""

    def __init__(self, name: str = "ws", fail_send: bool = False):
        self.name = name
        self.fail_send = fail_send
        self.accepted = False
        self.sent: List[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail_send:
            raise RuntimeError("socket is gone")
        self.sent.append(data)

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]

    def __repr__(self):
        return f"FakeWebSocket({self.name})"


class FakeKafkaService:
    """In-process stand-in for KafkaService used by bridge and API tests."""

    def __init__(
        self,
        connected: bool = True,
        topics: Optional[List[str]] = None,
        connect_error: bool = False,
        publish_error: bool = False,
        admin_error: bool = False,
    ):
        self._connected = connected
        self.topics = list(topics or [])
        self.connect_error = connect_error
        self.publish_error = publish_error
        self.admin_error = admin_error
        self.published: List[tuple] = []
        self.ensured: List[tuple] = []
        self.consumers: dict = {}
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.registered = threading.Event()
        self.bootstrap_failed = threading.Event()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self):
        self.connect_calls += 1
        if self.connect_error:
            self.bootstrap_failed.set()
            raise BrokerConnectionError("broker unreachable")
        self._connected = True

    def disconnect(self):
        self.disconnect_calls += 1
        self._connected = False
        self.consumers.clear()

    def publish(self, topic: str, payload: Any, key: Optional[str] = None):
        if not self._connected or self.publish_error:
            raise PublishError(topic, "Kafka producer is not connected")
        self.published.append((topic, payload, key))

    def list_topics(self):
        return sorted(self.topics)

    def ensure_topic(self, topic: str, partitions: int = 1) -> bool:
        if self.admin_error:
            raise AdminError(f"Failed to create topic {topic!r}")
        self.ensured.append((topic, partitions))
        if topic in self.topics:
            return False
        self.topics.append(topic)
        return True

    def register_consumer(self, group_id, topics, handler) -> bool:
        if group_id in self.consumers:
            return False
        self.consumers[group_id] = (list(topics), handler)
        self.registered.set()
        return True

    def consumer_groups(self):
        return sorted(self.consumers)


@pytest.fixture
def settings():
    return Settings(
        kafka_bootstrap="broker-1:9092,broker-2:9092",
        connect_max_tries=3,
        connect_backoff_sec=0,
        publish_timeout_sec=1,
        consumer_poll_timeout_ms=10,
        metrics_enabled=True,
    )


@pytest.fixture
def fake_kafka():
    return FakeKafkaService()


@pytest.fixture
def make_ws():
    def _make(name: str = "ws", **kw) -> FakeWebSocket:
        return FakeWebSocket(name, **kw)
    return _make


@pytest.fixture
def record_factory():
    def _make(topic: str = "messages", value: Optional[bytes] = b'{"a": 1}', offset: int = 0) -> BrokerRecord:
        return BrokerRecord(
            topic=topic,
            partition=0,
            offset=str(offset),
            timestamp_ms=1_700_000_000_000,
            key=None,
            value=value,
        )
    return _make


@pytest.fixture
def kafka_factory():
    return FakeKafkaService
