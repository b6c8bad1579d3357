from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from kafka import KafkaAdminClient, KafkaConsumer, KafkaProducer
from kafka.admin import NewTopic
from kafka.errors import (
    KafkaError,
    KafkaTimeoutError,
    NoBrokersAvailable,
    NodeNotReadyError,
    TopicAlreadyExistsError,
)

from kafka_bridge.core.config import Settings
from kafka_bridge.core.exceptions import AdminError, BrokerConnectionError, PublishError
from kafka_bridge.models.messages import BrokerRecord

logger = logging.getLogger(__name__)

_RETRYABLE = (KafkaTimeoutError, NoBrokersAvailable, NodeNotReadyError)

RecordHandler = Callable[[BrokerRecord], Any]


class ConsumerSubscription:
    """
    One consumer group: a KafkaConsumer plus the thread that polls it.

    Every delivered record is handed to *handler* in delivery order. A failing
    handler is logged and the loop moves on to the next record.
    """

    def __init__(
        self,
        group_id: str,
        consumer: KafkaConsumer,
        handler: RecordHandler,
        poll_timeout_ms: int = 1000,
        error_backoff_sec: float = 0.3,
    ) -> None:
        self.group_id = group_id
        self._consumer = consumer
        self._handler = handler
        self._poll_timeout_ms = poll_timeout_ms
        self._error_backoff_sec = error_backoff_sec
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"kafka-consumer-{group_id}", daemon=True
        )
        self.handler_failures = 0

    def start(self) -> None:
        self._thread.start()

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stop.is_set()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("consumer thread for group %s did not stop in %.1fs", self.group_id, timeout)
            return
        # The poll thread closes the consumer on exit; close here if it never ran.
        if self._thread.ident is None:
            self._close_consumer()

    def _close_consumer(self) -> None:
        try:
            self._consumer.close()
        except Exception:
            logger.exception("closing consumer for group %s failed", self.group_id)

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    batches = self._consumer.poll(timeout_ms=self._poll_timeout_ms)
                except Exception:
                    logger.exception("poll failed for group %s; retrying", self.group_id)
                    self._stop.wait(self._error_backoff_sec)
                    continue
                for _, records in (batches or {}).items():
                    for rec in records:
                        self._dispatch(rec)
        finally:
            self._close_consumer()

    def _dispatch(self, rec: Any) -> None:
        try:
            record = BrokerRecord.from_consumer_record(rec)
            self._handler(record)
            logger.debug("processed %s:%s@%s", record.topic, record.partition, record.offset)
        except Exception:
            self.handler_failures += 1
            logger.exception(
                "error processing record from topic %r (group %s)",
                getattr(rec, "topic", None), self.group_id,
            )


class KafkaService:
    """
    Retrying adapter around the kafka-python producer, consumer and admin APIs.

    Construct one per application and pass it to whoever needs the broker.
    All methods block; call them from worker threads when on an event loop.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.bootstrap = settings.bootstrap_servers()
        self._producer: KafkaProducer | None = None
        self._admin: KafkaAdminClient | None = None
        self._admin_lock = threading.Lock()
        self._consumers: Dict[str, ConsumerSubscription] = {}
        self._consumers_lock = threading.Lock()
        # bumped by disconnect(); clients built under an older generation are closed
        self._generation = 0
        self._state_lock = threading.Lock()

    # ---------- bootstrap common kwargs ----------
    def _common_kwargs(self) -> dict:
        kw = dict(
            bootstrap_servers=self.bootstrap,
            client_id=self.settings.kafka_client_id,
            request_timeout_ms=self.settings.request_timeout_ms,
            api_version_auto_timeout_ms=self.settings.api_version_auto_timeout_ms,
        )
        if self.settings.kafka_api_version:
            kw["api_version"] = tuple(int(p) for p in self.settings.kafka_api_version.split("."))
        return kw

    def _with_retry(self, what: str, build: Callable[[], Any]) -> Any:
        """Call *build* up to ``connect_max_tries`` times with a fixed backoff."""
        last_exc: Exception | None = None
        for attempt in range(1, self.settings.connect_max_tries + 1):
            try:
                return build()
            except _RETRYABLE as exc:
                last_exc = exc
                logger.debug("%s attempt %d/%d failed: %s", what, attempt, self.settings.connect_max_tries, exc)
                if attempt < self.settings.connect_max_tries:
                    time.sleep(self.settings.connect_backoff_sec)
            except KafkaError as exc:
                raise BrokerConnectionError(f"{what} failed: {exc}") from exc
        raise BrokerConnectionError(
            f"{what} failed after {self.settings.connect_max_tries} attempts "
            f"against {','.join(self.bootstrap)}: {last_exc}"
        ) from last_exc

    def _ensure_admin(self) -> KafkaAdminClient:
        with self._admin_lock:
            if self._admin is None:
                self._admin = self._with_retry(
                    "admin connect", lambda: KafkaAdminClient(**self._common_kwargs())
                )
            return self._admin

    # ---------- Connection ----------
    @property
    def is_connected(self) -> bool:
        return self._producer is not None

    def connect(self) -> None:
        if self._producer is not None:
            return
        generation = self._generation
        producer = self._with_retry(
            "producer connect",
            lambda: KafkaProducer(retries=self.settings.producer_retries, **self._common_kwargs()),
        )
        with self._state_lock:
            stale = generation != self._generation
            if not stale:
                self._producer = producer
        if stale:
            logger.info("Kafka service was disconnected while connecting; closing new producer")
            producer.close(timeout=self.settings.publish_timeout_sec)
            return
        logger.info("Kafka producer connected to %s", ",".join(self.bootstrap))

    def disconnect(self) -> None:
        with self._state_lock:
            self._generation += 1
            producer, self._producer = self._producer, None
        with self._consumers_lock:
            subscriptions = list(self._consumers.values())
            self._consumers.clear()
        for sub in subscriptions:
            try:
                sub.stop()
            except Exception:
                logger.exception("stopping consumer group %s failed", sub.group_id)

        if producer is not None:
            try:
                producer.flush(timeout=self.settings.publish_timeout_sec)
                producer.close(timeout=self.settings.publish_timeout_sec)
            except Exception:
                logger.exception("closing Kafka producer failed")

        with self._admin_lock:
            admin, self._admin = self._admin, None
        if admin is not None:
            try:
                admin.close()
            except Exception:
                logger.exception("closing Kafka admin client failed")

        if producer is not None or subscriptions:
            logger.info("Kafka service disconnected")

    # ---------- Producer ----------
    @staticmethod
    def serialize(payload: Any) -> bytes:
        """Strings go through as-is, everything else is JSON-encoded."""
        if isinstance(payload, bytes):
            return payload
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return text.encode("utf-8")

    def publish(self, topic: str, payload: Any, key: Optional[str] = None):
        producer = self._producer
        if producer is None:
            raise PublishError(topic, "Kafka producer is not connected")
        try:
            future = producer.send(
                topic,
                value=self.serialize(payload),
                key=key.encode("utf-8") if key else None,
                timestamp_ms=int(time.time() * 1000),
            )
            metadata = future.get(timeout=self.settings.publish_timeout_sec)
        except KafkaError as exc:
            raise PublishError(topic, str(exc) or type(exc).__name__) from exc
        logger.debug("message sent to %s:%s@%s", topic, metadata.partition, metadata.offset)
        return metadata

    # ---------- Topics ----------
    def list_topics(self) -> List[str]:
        """Topic names, or an empty list when the broker cannot be asked."""
        try:
            return sorted(self._ensure_admin().list_topics())
        except Exception as exc:
            logger.warning("listing topics failed: %s", exc)
            return []

    def ensure_topic(self, topic: str, partitions: int = 1) -> bool:
        """Create *topic* unless it already exists. Returns True if a create call was made."""
        try:
            admin = self._ensure_admin()
            if topic in set(admin.list_topics()):
                logger.debug("topic %r already exists", topic)
                return False
            admin.create_topics([
                NewTopic(
                    name=topic,
                    num_partitions=partitions,
                    replication_factor=self.settings.topic_replication_factor,
                )
            ])
        except TopicAlreadyExistsError:
            # created concurrently by someone else
            return True
        except (KafkaError, BrokerConnectionError) as exc:
            raise AdminError(f"Failed to create topic {topic!r}: {exc}") from exc
        logger.info("topic %r created with %d partition(s)", topic, partitions)
        return True

    # ---------- Consumer groups ----------
    def register_consumer(self, group_id: str, topics: Iterable[str], handler: RecordHandler) -> bool:
        """
        Subscribe *handler* to *topics* under *group_id*, new records only.

        At most one subscription exists per group id: registering a known group
        again does nothing and returns False.
        """
        topics = list(topics)
        generation = self._generation
        with self._consumers_lock:
            if group_id in self._consumers:
                logger.info("consumer group %r already registered", group_id)
                return False
            consumer = self._with_retry(
                f"consumer {group_id} connect",
                lambda: KafkaConsumer(
                    group_id=group_id,
                    auto_offset_reset="latest",
                    enable_auto_commit=True,
                    **self._common_kwargs(),
                ),
            )
            try:
                consumer.subscribe(topics=topics)
            except Exception as exc:
                consumer.close()
                raise BrokerConnectionError(f"subscribing {group_id} to {topics} failed: {exc}") from exc
            with self._state_lock:
                stale = generation != self._generation
            if stale:
                logger.info("Kafka service was disconnected while registering %r; closing consumer", group_id)
                consumer.close()
                return False
            sub = ConsumerSubscription(
                group_id,
                consumer,
                handler,
                poll_timeout_ms=self.settings.consumer_poll_timeout_ms,
                error_backoff_sec=self.settings.connect_backoff_sec,
            )
            self._consumers[group_id] = sub
        sub.start()
        logger.info("consumer group %r listening to topics: %s", group_id, ", ".join(topics))
        return True

    def consumer_groups(self) -> List[str]:
        with self._consumers_lock:
            return sorted(self._consumers)
