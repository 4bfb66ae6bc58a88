import logging
import threading
from typing import Callable, List

from ..ports.events import EventPublisher

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, dict], None]


class InMemoryEventBus(EventPublisher):
    """Fan-out of committed state changes to in-process subscribers.

    Subscribers (dashboards, audit writers, websocket bridges) are called
    synchronously in registration order; one failing subscriber does not
    stop the others.
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

    def publish(self, topic: str, payload: dict) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(topic, payload)
            except Exception:
                logger.exception("Event subscriber failed for topic %s", topic)


# Process-wide bus the API publishes to
event_bus = InMemoryEventBus()
