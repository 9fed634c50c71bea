"""Synchronous publish/subscribe channel used by the weighing engine."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List

log = logging.getLogger(__name__)

Subscriber = Callable[[Any], None]


class EventBus:
    """Simple publish/subscribe event bus.

    Subscribers run on the publishing thread, in subscription order. A
    subscriber that raises is logged and the remaining ones still run.
    """

    def __init__(self) -> None:
        self._subs: Dict[str, List[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, fn: Subscriber) -> None:
        if topic not in TOPICS:
            raise ValueError(f"unknown topic {topic!r}")
        with self._lock:
            self._subs.setdefault(topic, []).append(fn)

    def unsubscribe(self, topic: str, fn: Subscriber) -> None:
        with self._lock:
            try:
                self._subs.get(topic, []).remove(fn)
            except ValueError:
                pass

    def publish(self, topic: str, payload: Any = None) -> None:
        with self._lock:
            subscribers = list(self._subs.get(topic, []))
        for fn in subscribers:
            try:
                fn(payload)
            except Exception:
                log.exception("Subscriber %r for %s failed", fn, topic)


STATE_CHANGED = "STATE_CHANGED"
WEIGHT_UPDATED = "WEIGHT_UPDATED"
MANUAL_MODE_CHANGED = "MANUAL_MODE_CHANGED"
ERROR_MESSAGE = "ERROR_MESSAGE"
SUCCESS_MESSAGE = "SUCCESS_MESSAGE"

# Known topics
TOPICS = [
    STATE_CHANGED,
    WEIGHT_UPDATED,
    MANUAL_MODE_CHANGED,
    ERROR_MESSAGE,
    SUCCESS_MESSAGE,
]

__all__ = [
    "EventBus",
    "TOPICS",
    "STATE_CHANGED",
    "WEIGHT_UPDATED",
    "MANUAL_MODE_CHANGED",
    "ERROR_MESSAGE",
    "SUCCESS_MESSAGE",
]
