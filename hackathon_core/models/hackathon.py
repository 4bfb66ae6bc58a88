from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field

from ..clock import utcnow
from ..config import DEFAULT_MAX_TEAM_SIZE


class Hackathon(SQLModel, table=True):
    __tablename__ = "hackathons"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    owner_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)

    # Schedule
    start_at: datetime
    end_at: datetime
    registration_deadline: datetime

    # Team rules
    max_team_size: int = Field(default=DEFAULT_MAX_TEAM_SIZE)
    allow_teams: bool = Field(default=True)
    allow_individual: bool = Field(default=True)

    participant_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)

    def status_at(self, now: datetime) -> str:
        """upcoming, live or past relative to ``now``."""
        if now < self.start_at:
            return "upcoming"
        if now <= self.end_at:
            return "live"
        return "past"

    def registration_open(self, now: datetime) -> bool:
        return now <= self.registration_deadline
