"""HTTP/WebSocket gateway relaying messages between browser clients and Kafka."""

__version__ = "1.0.0"
