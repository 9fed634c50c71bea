import logging

import pytest

from weighbridge.services.event_bus import ERROR_MESSAGE, STATE_CHANGED, EventBus


def test_publish_reaches_subscribers_in_order():
    bus = EventBus()
    seen = []
    bus.subscribe(STATE_CHANGED, lambda payload: seen.append(("a", payload)))
    bus.subscribe(STATE_CHANGED, lambda payload: seen.append(("b", payload)))
    bus.publish(STATE_CHANGED, 1)
    bus.publish(ERROR_MESSAGE, "ignored")
    assert seen == [("a", 1), ("b", 1)]


def test_unknown_topic_rejected():
    with pytest.raises(ValueError):
        EventBus().subscribe("WEIGHT", print)


def test_unsubscribe_unknown_is_noop():
    bus = EventBus()
    seen = []
    bus.unsubscribe(STATE_CHANGED, seen.append)
    bus.subscribe(STATE_CHANGED, seen.append)
    bus.unsubscribe(STATE_CHANGED, seen.append)
    bus.publish(STATE_CHANGED, 1)
    assert seen == []


def test_failing_subscriber_is_logged(caplog):
    bus = EventBus()
    seen = []

    def broken(_payload):
        raise RuntimeError("boom")

    bus.subscribe(STATE_CHANGED, broken)
    bus.subscribe(STATE_CHANGED, seen.append)
    with caplog.at_level(logging.ERROR, logger="weighbridge.services.event_bus"):
        bus.publish(STATE_CHANGED, "x")
    assert seen == ["x"]
    assert any("failed" in record.message for record in caplog.records)
