"""Broker error taxonomy shared by the adapter, the bridge and the REST layer."""
from __future__ import annotations


class BrokerError(Exception):
    """Base class for every failure talking to the broker."""


class BrokerConnectionError(BrokerError, ConnectionError):
    """The broker is unreachable.

    Non-fatal: the gateway keeps serving echo/broadcast without broker features.
    """


class PublishError(BrokerError):
    """A single publish failed, or the producer is not connected."""

    def __init__(self, topic: str, detail: str) -> None:
        super().__init__(f"Failed to send message to topic {topic!r}: {detail}")
        self.topic = topic


class AdminError(BrokerError):
    """A topic administration call (create / list) failed broker-side."""


class EnvelopeParseError(ValueError):
    """An inbound WebSocket frame is not valid JSON."""
