from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from ..clock import utcnow


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)  # stored lower-cased
    display_name: str = Field(default="")
    role: str = Field(default="participant")  # participant, organizer, judge, admin
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
