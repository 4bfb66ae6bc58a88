from abc import ABC, abstractmethod
from typing import Optional

from ..models.user import User


class IdentityPort(ABC):
    @abstractmethod
    def resolve(self, token: str) -> Optional[User]:
        """Return the user owning a session token, or None."""
        pass

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]:
        pass

    @abstractmethod
    def provision_user(self, email: str) -> User:
        """Return the user for ``email``, creating a placeholder account if needed."""
        pass
