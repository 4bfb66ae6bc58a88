from datetime import datetime
from typing import Optional
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field, UniqueConstraint

from ..clock import utcnow


class Registration(SQLModel, table=True):
    __tablename__ = "registrations"
    __table_args__ = (UniqueConstraint("hackathon_id", "user_id", name="unique_hackathon_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    hackathon_id: int = Field(foreign_key="hackathons.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    mode: str = Field(default="individual")  # individual, team
    team_id: Optional[int] = Field(default=None, foreign_key="teams.id", index=True)
    status: str = Field(default="pending")  # pending, approved, rejected
    consent: bool = Field(default=False)
    profile: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
