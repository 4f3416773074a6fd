import json
import logging

from courtbook import publisher
from courtbook.consumer import on_message


class FakeChannel:
    def __init__(self):
        self.published = []

    def exchange_declare(self, **kwargs):
        self.declared = kwargs

    def basic_publish(self, exchange, routing_key, body):
        self.published.append((exchange, json.loads(body)))


class FakeConnection:
    last = None

    def __init__(self, params):
        self.ch = FakeChannel()
        self.closed = False
        FakeConnection.last = self

    def channel(self):
        return self.ch

    def close(self):
        self.closed = True


def test_notify_promotion_publishes_event(monkeypatch):
    monkeypatch.setattr(publisher.pika, "BlockingConnection", FakeConnection)
    publisher.notify_promotion("alice", "Monday:6pm-7pm")

    conn = FakeConnection.last
    assert conn.closed
    assert conn.ch.declared["exchange_type"] == "fanout"
    exchange, msg = conn.ch.published[0]
    assert exchange == "events"
    assert msg["type"] == "WaitlistPromoted"
    assert msg["payload"]["email"].startswith("alice@")
    assert msg["payload"]["day"] == "Monday"
    assert msg["payload"]["timeLabel"] == "6pm-7pm"


def test_payload_keeps_full_address():
    assert publisher.promotion_payload("bob@club.org", "Friday:7pm-8pm")["email"] == "bob@club.org"


def test_consumer_logs_mock_email(caplog):
    caplog.set_level(logging.INFO, logger="courtbook.consumer")
    body = json.dumps({
        "type": "WaitlistPromoted",
        "payload": publisher.promotion_payload("alice", "Monday:6pm-7pm"),
    })
    on_message(None, None, None, body)
    assert "mock email to alice@" in caplog.text
    assert "Monday 6pm-7pm" in caplog.text


def test_consumer_ignores_other_events(caplog):
    caplog.set_level(logging.INFO, logger="courtbook.consumer")
    on_message(None, None, None, json.dumps({"type": "Other", "payload": {}}))
    on_message(None, None, None, b"not json")
    assert "mock email" not in caplog.text
