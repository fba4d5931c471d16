# backend/services/events.py
import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

INVENTORY_UPDATED = "inventory:updated"
ALERT_CREATED = "alert:created"
ALERT_RESOLVED = "alert:resolved"

Subscriber = Callable[[str, Dict[str, Any]], None]


class EventBus:
    """
    In-process fan-out of domain events to subscribers (e.g. a websocket
    broadcaster). Delivery is fire-and-forget: a failing subscriber is logged
    and never propagates to the publisher.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        logger.debug("event %s -> %d subscriber(s)", event, len(subscribers))
        for callback in subscribers:
            try:
                callback(event, payload)
            except Exception:
                logger.exception("Event subscriber failed for %s", event)
