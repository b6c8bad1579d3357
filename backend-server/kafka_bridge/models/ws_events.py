# kafka_bridge/models/ws_events.py
from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from kafka_bridge.models.messages import BrokerRecord


def _iso_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class EnvelopeType(str, Enum):
    """Envelope tags as the browser client expects them on the wire."""

    WELCOME = "welcome"
    ECHO = "echo"
    BROADCAST = "broadcast"
    USER_MESSAGE = "user"
    BROKER_MESSAGE = "kafka-message"
    BROKER_SENT = "kafka-sent"
    BROKER_ERROR = "kafka-error"
    PARSE_ERROR = "error"


class ClientEnvelope(BaseModel):
    """
    Tagged JSON frame sent to WebSocket clients.

    The payload travels as ``message`` or, for replies about something the
    client sent, as ``originalMessage``. Factories set only the fields their kind
    carries, and only those (plus the timestamp) go on the wire.
    """

    model_config = ConfigDict(frozen=True)

    type: EnvelopeType
    message: Any = None
    originalMessage: Any = None
    topic: Optional[str] = None
    partition: Optional[int] = None
    offset: Optional[str] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=_iso_now)

    def to_wire(self) -> dict:
        # explicit None payloads stay on the wire; fields never set are left out
        return self.model_dump(mode="json", include=self.model_fields_set | {"timestamp"})

    # ---------- factories ----------
    @classmethod
    def welcome(cls, text: str = "Connected to Kafka Bridge") -> "ClientEnvelope":
        return cls(type=EnvelopeType.WELCOME, message=text)

    @classmethod
    def echo(cls, payload: Any) -> "ClientEnvelope":
        return cls(type=EnvelopeType.ECHO, originalMessage=payload)

    @classmethod
    def broadcast(cls, payload: Any) -> "ClientEnvelope":
        return cls(type=EnvelopeType.BROADCAST, message=payload)

    @classmethod
    def parse_error(cls, text: str = "Invalid JSON format") -> "ClientEnvelope":
        return cls(type=EnvelopeType.PARSE_ERROR, message=text)

    @classmethod
    def broker_sent(cls, payload: Any, topic: str) -> "ClientEnvelope":
        return cls(type=EnvelopeType.BROKER_SENT, originalMessage=payload, topic=topic)

    @classmethod
    def broker_error(cls, payload: Any, topic: str, text: str = "Failed to send message to Kafka") -> "ClientEnvelope":
        return cls(type=EnvelopeType.BROKER_ERROR, originalMessage=payload, topic=topic, error=text)

    @classmethod
    def broker_message(cls, record: BrokerRecord) -> "ClientEnvelope":
        return cls(
            type=EnvelopeType.BROKER_MESSAGE,
            message=record.value_json(),
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            timestamp=record.timestamp_iso,
        )
