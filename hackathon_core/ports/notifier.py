from abc import ABC, abstractmethod
from typing import Optional


class NotifierPort(ABC):
    @abstractmethod
    def notify(
        self,
        user_id: int,
        kind: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> None:
        """Deliver an alert to a user. Callers treat this as fire-and-forget."""
        pass
