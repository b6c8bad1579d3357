# kafka_bridge/cli/producer.py
"""Interactive producer: every line typed at the prompt is sent to Kafka.

Commands:
  <text>            send to the "messages" topic
  /notify <text>    send to the "notifications" topic
  /help, /?         list commands
  /quit, /exit      disconnect and leave
"""
import argparse
import datetime as dt
import logging
import sys
import uuid
from typing import Callable, Optional, TextIO

from kafka_bridge.core.config import Settings, get_settings
from kafka_bridge.core.exceptions import BrokerError, PublishError
from kafka_bridge.core.log_config import setup_logging
from kafka_bridge.services.kafka_service import KafkaService

LOG = logging.getLogger("kafka_bridge.producer")

MESSAGES_TOPIC = "messages"
NOTIFICATIONS_TOPIC = "notifications"
SENDER = "cli-producer"

HELP_TEXT = (
    "Commands:\n"
    f"   - Just type a message to send to \"{MESSAGES_TOPIC}\" topic\n"
    f"   - /notify <message> to send to \"{NOTIFICATIONS_TOPIC}\" topic\n"
    "   - /quit or Ctrl+C to exit"
)


def iso_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def make_message(text: str) -> dict:
    return {
        "content": text,
        "sender": SENDER,
        "timestamp": iso_now(),
        "id": uuid.uuid4().hex[:9],
    }


class ProducerCLI:
    def __init__(self, kafka: KafkaService, out: TextIO = sys.stdout) -> None:
        self.kafka = kafka
        self.out = out
        self.running = False

    def _print(self, text: str) -> None:
        print(text, file=self.out)

    def start(self, topics: dict[str, int]) -> None:
        """Connect and make sure the topics exist. Raises BrokerError on failure."""
        self.kafka.connect()
        for topic, partitions in topics.items():
            self.kafka.ensure_topic(topic, partitions)
        self.running = True
        self._print("Connected to Kafka successfully!")
        self._print(HELP_TEXT)

    def handle_input(self, line: str) -> bool:
        """Process one prompt line. Returns False once the user asked to quit."""
        text = line.strip()
        if not text:
            return True
        if text in ("/quit", "/exit"):
            self.running = False
            return False
        if text in ("/help", "/?"):
            self._print(HELP_TEXT)
            return True
        if text == "/notify" or text.startswith("/notify "):
            body = text[len("/notify"):].strip()
            if not body:
                self._print("Usage: /notify <message>")
                return True
            self.send(NOTIFICATIONS_TOPIC, body)
            return True
        self.send(MESSAGES_TOPIC, text)
        return True

    def send(self, topic: str, text: str) -> bool:
        try:
            self.kafka.publish(topic, make_message(text))
        except PublishError as exc:
            LOG.error("%s", exc)
            self._print(f"Failed to send message to {topic}: {exc}")
            return False
        self._print(f"Message sent to \"{topic}\": \"{text}\"")
        return True

    def loop(self, read: Callable[[str], str] = input) -> None:
        while self.running:
            try:
                line = read("Enter message: ")
            except (EOFError, KeyboardInterrupt):
                break
            if not self.handle_input(line):
                break
        self.shutdown()

    def shutdown(self) -> None:
        self._print("Shutting down producer...")
        self.running = False
        self.kafka.disconnect()
        self._print("Disconnected from Kafka")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Send typed messages to Kafka topics")
    ap.add_argument("-b", "--bootstrap", default=None,
                    help="Comma-separated bootstrap servers (default: KAFKA_BROKER or localhost:9092)")
    ap.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, WARN, ERROR)")
    return ap.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    settings: Settings = get_settings()
    if args.bootstrap:
        settings = settings.model_copy(update={"kafka_bootstrap": args.bootstrap})
    setup_logging(args.log_level or settings.log_level)

    cli = ProducerCLI(KafkaService(settings))
    try:
        cli.start(settings.default_topics)
    except BrokerError as exc:
        LOG.error("Failed to start Kafka producer: %s", exc)
        cli.kafka.disconnect()
        return 1
    cli.loop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
