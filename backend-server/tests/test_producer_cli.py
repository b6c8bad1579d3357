import io

import pytest

from kafka_bridge.cli import producer as producer_cli
from kafka_bridge.cli.producer import ProducerCLI


@pytest.fixture
def cli(fake_kafka):
    return ProducerCLI(fake_kafka, out=io.StringIO())


def test_start_ensures_topics(cli, fake_kafka):
    cli.start({"messages": 3, "notifications": 1})
    assert cli.running
    assert fake_kafka.ensured == [("messages", 3), ("notifications", 1)]


def test_plain_text_goes_to_messages(cli, fake_kafka):
    assert cli.handle_input("hello there") is True

    topic, payload, _ = fake_kafka.published[0]
    assert topic == "messages"
    assert payload["content"] == "hello there"
    assert payload["sender"] == "cli-producer"
    assert len(payload["id"]) == 9


def test_notify_goes_to_notifications(cli, fake_kafka):
    cli.handle_input("/notify deploy finished")
    assert fake_kafka.published[0][0] == "notifications"
    assert fake_kafka.published[0][1]["content"] == "deploy finished"


def test_notify_without_text_prints_usage(cli, fake_kafka):
    cli.handle_input("/notify")
    assert fake_kafka.published == []
    assert "Usage: /notify <message>" in cli.out.getvalue()


def test_blank_and_help_do_not_publish(cli, fake_kafka):
    assert cli.handle_input("   ") is True
    assert cli.handle_input("/help") is True
    assert fake_kafka.published == []
    assert "/notify" in cli.out.getvalue()


@pytest.mark.parametrize("command", ["/quit", "/exit"])
def test_quit_commands(cli, command):
    cli.running = True
    assert cli.handle_input(command) is False
    assert cli.running is False


def test_send_failure_keeps_running(cli, fake_kafka):
    fake_kafka.publish_error = True
    cli.running = True
    assert cli.handle_input("hello") is True
    assert cli.running
    assert "Failed to send message to messages" in cli.out.getvalue()


def test_loop_reads_until_eof_then_disconnects(cli, fake_kafka):
    lines = iter(["one", "/notify two"])

    def _read(_prompt):
        try:
            return next(lines)
        except StopIteration:
            raise EOFError

    cli.running = True
    cli.loop(read=_read)

    assert [t for t, _, _ in fake_kafka.published] == ["messages", "notifications"]
    assert fake_kafka.disconnect_calls == 1


def test_main_exits_1_when_broker_unreachable(monkeypatch, kafka_factory):
    monkeypatch.setattr(producer_cli, "KafkaService", lambda settings: kafka_factory(connect_error=True))
    monkeypatch.setattr(producer_cli, "setup_logging", lambda level: None)
    assert producer_cli.main(["--bootstrap", "nowhere:9092"]) == 1
