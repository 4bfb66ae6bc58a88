from datetime import datetime
from typing import Optional
from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field, UniqueConstraint

from ..clock import utcnow


class Team(SQLModel, table=True):
    """A named group registered into exactly one hackathon."""
    __tablename__ = "teams"

    id: Optional[int] = Field(default=None, primary_key=True)
    hackathon_id: int = Field(foreign_key="hackathons.id", index=True)
    name: str = Field(index=True)
    join_code: str = Field(unique=True, index=True)  # upper-cased
    leader_id: int = Field(foreign_key="users.id")
    locked: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)


class TeamMember(SQLModel, table=True):
    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="unique_team_user"),
        # At most one leader row per team
        Index(
            "unique_team_leader",
            "team_id",
            unique=True,
            sqlite_where=text("role = 'leader'"),
            postgresql_where=text("role = 'leader'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    team_id: int = Field(foreign_key="teams.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    email: str
    role: str = Field(default="member")  # leader, member
    status: str = Field(default="invited")  # invited, joined, declined
    invited_at: datetime = Field(default_factory=utcnow)
    responded_at: Optional[datetime] = Field(default=None)
