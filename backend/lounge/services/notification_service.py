# Overview: In-process fan-out of state-change events to connected listeners.

"""
Notification Hub

WHY: Dashboards and station screens need to hear about station, session and
payment changes without polling. Services publish here after they commit;
transports (WebSocket bridge, test queues) subscribe.

DESIGN:
- Best-effort delivery: no ordering, no acknowledgement, no replay
- A failing subscriber is logged and skipped, never breaks the publisher
- One hub per app, stored in app.extensions["lounge.notifier"]
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from typing import Callable

from flask import current_app, has_app_context


logger = logging.getLogger(__name__)


# =============================================================================
# EVENT TYPES (CONSTANTS)
# =============================================================================

STATION_CREATED = "STATION_CREATED"
STATION_UPDATED = "STATION_UPDATED"
STATION_MAINTENANCE = "STATION_MAINTENANCE"
SESSION_CREATED = "SESSION_CREATED"
SESSION_ENDED = "SESSION_ENDED"
PAYMENT_CREATED = "PAYMENT_CREATED"
PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
CUSTOMER_CREATED = "CUSTOMER_CREATED"
CUSTOMER_UPDATED = "CUSTOMER_UPDATED"
CUSTOMER_DELETED = "CUSTOMER_DELETED"
GAME_CREATED = "GAME_CREATED"
GAME_UPDATED = "GAME_UPDATED"
GAME_DELETED = "GAME_DELETED"

EVENT_TYPES = frozenset({
    STATION_CREATED,
    STATION_UPDATED,
    STATION_MAINTENANCE,
    SESSION_CREATED,
    SESSION_ENDED,
    PAYMENT_CREATED,
    PAYMENT_COMPLETED,
    CUSTOMER_CREATED,
    CUSTOMER_UPDATED,
    CUSTOMER_DELETED,
    GAME_CREATED,
    GAME_UPDATED,
    GAME_DELETED,
})


Subscriber = Callable[[dict], None]


class NotificationHub:
    def __init__(self):
        self._subscribers: dict[int, Subscriber] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> int:
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = callback
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._subscribers.pop(token, None) is not None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event_type: str, data) -> int:
        """
        Deliver {"type": event_type, "data": data} to every subscriber.

        Returns the number of subscribers that accepted the event.
        """
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        event = {"type": event_type, "data": data}
        with self._lock:
            targets = list(self._subscribers.items())

        delivered = 0
        for token, callback in targets:
            try:
                callback(event)
                delivered += 1
            except Exception:
                logger.warning(
                    "Notification subscriber %s failed for %s",
                    token,
                    event_type,
                    exc_info=True,
                    extra={"component": "notifications", "details": {"event_type": event_type}},
                )
        return delivered


class QueueSubscriber:
    """
    Pull-style subscriber: buffers events until drained.

    Bounded; when full the oldest event is dropped.
    """

    def __init__(self, maxlen: int = 500):
        self._events: deque[dict] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, event: dict) -> None:
        with self._lock:
            self._events.append(event)

    def drain(self) -> list[dict]:
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    def types(self) -> list[str]:
        with self._lock:
            return [e["type"] for e in self._events]

    def __len__(self) -> int:
        return len(self._events)


def get_notifier(notifier: NotificationHub | None = None) -> NotificationHub | None:
    """Explicit notifier wins; otherwise the current app's hub (if any)."""
    if notifier is not None:
        return notifier
    if has_app_context():
        return current_app.extensions.get("lounge.notifier")
    return None


def notify(notifier: NotificationHub | None, event_type: str, data) -> int:
    """Publish through the resolved hub. Call only after the commit."""
    hub = get_notifier(notifier)
    if hub is None:
        return 0
    return hub.publish(event_type, data)
