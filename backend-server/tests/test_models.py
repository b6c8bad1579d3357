from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from kafka_bridge.models.messages import BrokerRecord
from kafka_bridge.models.ws_events import ClientEnvelope, EnvelopeType


def test_broker_record_from_consumer_record():
    rec = SimpleNamespace(
        topic="messages", partition=2, offset=41, timestamp=1_700_000_000_000,
        key=b"user-1", value=b'{"a": 1}', headers=[("trace", b"abc"), ("empty", None)],
    )
    record = BrokerRecord.from_consumer_record(rec)

    assert record.offset == "41"
    assert record.partition == 2
    assert record.key == b"user-1"
    assert record.headers == {"trace": b"abc", "empty": b""}
    assert record.timestamp_iso.startswith("2023-11-14T22:13:20")


def test_broker_record_missing_timestamp_uses_now():
    rec = SimpleNamespace(topic="t", partition=0, offset=0, timestamp=-1, key=None, value=None, headers=None)
    record = BrokerRecord.from_consumer_record(rec)
    assert record.timestamp_ms > 1_700_000_000_000
    assert record.headers == {}


def test_broker_record_is_immutable(record_factory):
    record = record_factory()
    with pytest.raises(ValidationError):
        record.topic = "other"


@pytest.mark.parametrize("value, expected", [
    (b'{"a": 1}', {"a": 1}),
    (b"[1, 2]", [1, 2]),
    (b"plain text", "plain text"),
    (None, None),
])
def test_value_json(record_factory, value, expected):
    assert record_factory(value=value).value_json() == expected


def test_broker_message_envelope_wire_shape(record_factory):
    frame = ClientEnvelope.broker_message(record_factory(offset=9)).to_wire()
    assert frame == {
        "type": "kafka-message",
        "message": {"a": 1},
        "topic": "messages",
        "partition": 0,
        "offset": "9",
        "timestamp": "2023-11-14T22:13:20+00:00",
    }


def test_broker_error_envelope_carries_original_and_error():
    frame = ClientEnvelope.broker_error({"topic": "t", "message": "m"}, "t").to_wire()
    assert frame["type"] == "kafka-error"
    assert frame["originalMessage"] == {"topic": "t", "message": "m"}
    assert frame["error"] == "Failed to send message to Kafka"
    assert "message" not in frame


def test_envelope_types_match_browser_client():
    assert {t.value for t in EnvelopeType} == {
        "welcome", "echo", "broadcast", "user", "kafka-message", "kafka-sent", "kafka-error", "error",
    }


def test_null_payload_is_serialized_but_unused_fields_are_not():
    frame = ClientEnvelope.echo(None).to_wire()
    assert frame == {"type": "echo", "originalMessage": None, "timestamp": frame["timestamp"]}
