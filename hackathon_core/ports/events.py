from abc import ABC, abstractmethod


class EventPublisher(ABC):
    @abstractmethod
    def publish(self, topic: str, payload: dict) -> None:
        """Broadcast a committed state change to subscribers (dashboards, audit)."""
        pass
