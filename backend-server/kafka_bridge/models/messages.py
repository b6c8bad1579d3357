from __future__ import annotations

import datetime as dt
import json
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class BrokerRecord(BaseModel):
    """One record delivered by a consumer subscription. Immutable."""

    model_config = ConfigDict(frozen=True)

    topic: str
    partition: int
    offset: str
    timestamp_ms: int
    key: Optional[bytes] = None
    value: Optional[bytes] = None
    headers: Dict[str, bytes] = Field(default_factory=dict)

    @classmethod
    def from_consumer_record(cls, rec: Any) -> "BrokerRecord":
        """Build from a kafka-python ``ConsumerRecord``."""
        ts = rec.timestamp if rec.timestamp is not None and rec.timestamp >= 0 else int(time.time() * 1000)
        headers = {name: (val or b"") for name, val in (rec.headers or [])}
        return cls(
            topic=rec.topic,
            partition=rec.partition,
            offset=str(rec.offset),
            timestamp_ms=ts,
            key=rec.key,
            value=rec.value,
            headers=headers,
        )

    @property
    def timestamp_iso(self) -> str:
        return dt.datetime.fromtimestamp(self.timestamp_ms / 1000.0, tz=dt.timezone.utc).isoformat()

    def value_json(self) -> Any:
        """
        Decode the value as JSON. Values that are not JSON are returned as text,
        an absent value as None.
        """
        if self.value is None:
            return None
        text = self.value.decode("utf-8", errors="replace")
        try:
            return json.loads(text)
        except ValueError:
            return text


class SendMessageRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    message: Any = None
    key: Optional[str] = None


class CreateTopicRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    partitions: int = Field(default=1, ge=1)
