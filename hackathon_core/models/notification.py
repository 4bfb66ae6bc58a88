from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from ..clock import utcnow


class Notification(SQLModel, table=True):
    """In-app alert delivered to a user."""
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    kind: str = Field(index=True)  # team_invite, invite_response, submission, winner, ...
    title: str
    message: str
    link: Optional[str] = Field(default=None)
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
