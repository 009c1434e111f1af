import logging

import pytest

from lounge.event_log import EventLog
from lounge.services.notification_service import NotificationHub, QueueSubscriber, notify


def test_publish_reaches_every_subscriber():
    hub = NotificationHub()
    first, second = QueueSubscriber(), QueueSubscriber()
    hub.subscribe(first)
    hub.subscribe(second)

    delivered = hub.publish("STATION_UPDATED", {"id": 1, "status": "ACTIVE"})

    assert delivered == 2
    assert first.drain() == [{"type": "STATION_UPDATED", "data": {"id": 1, "status": "ACTIVE"}}]
    assert len(second) == 1


def test_failing_subscriber_is_skipped(caplog):
    hub = NotificationHub()
    queue = QueueSubscriber()

    def broken(event):
        raise RuntimeError("socket closed")

    hub.subscribe(broken)
    hub.subscribe(queue)

    with caplog.at_level(logging.WARNING):
        assert hub.publish("SESSION_ENDED", {"id": 3}) == 1

    assert queue.types() == ["SESSION_ENDED"]
    assert "subscriber" in caplog.text


def test_unsubscribe_and_unknown_types():
    hub = NotificationHub()
    queue = QueueSubscriber()
    token = hub.subscribe(queue)

    assert hub.unsubscribe(token) is True
    assert hub.unsubscribe(token) is False
    assert hub.publish("GAME_CREATED", {}) == 0

    with pytest.raises(ValueError):
        hub.publish("SOMETHING_ELSE", {})


def test_queue_subscriber_drops_oldest():
    queue = QueueSubscriber(maxlen=2)
    for i in range(3):
        queue({"type": "PAYMENT_CREATED", "data": {"id": i}})

    assert [e["data"]["id"] for e in queue.drain()] == [1, 2]
    assert len(queue) == 0


def test_notify_without_hub_is_noop():
    assert notify(None, "STATION_CREATED", {}) == 0


def test_event_log_ring_buffer():
    log = EventLog(capacity=3)
    logger = logging.getLogger("lounge.tests.event_log")
    logger.addHandler(log)
    try:
        for i in range(5):
            logger.error("failure %s", i, extra={"component": "payments"})
        logger.info("ignored below WARNING")
    finally:
        logger.removeHandler(log)

    entries = log.entries()
    assert [e["message"] for e in entries] == ["failure 4", "failure 3", "failure 2"]
    assert entries[0]["component"] == "payments"
    assert log.entries(limit=1)[0]["message"] == "failure 4"
    assert '"failure 2"' in log.export()

    log.clear()
    assert len(log) == 0


def test_event_log_records_exceptions():
    log = EventLog()
    logger = logging.getLogger("lounge.tests.event_log_exc")
    logger.addHandler(log)
    try:
        try:
            raise ValueError("bad amount")
        except ValueError:
            logger.exception("Settlement failed")
    finally:
        logger.removeHandler(log)

    assert log.entries()[0]["error"] == "ValueError: bad amount"
