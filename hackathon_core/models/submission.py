from datetime import datetime
from typing import List, Optional
from sqlalchemy import CheckConstraint, Column, JSON
from sqlmodel import SQLModel, Field, UniqueConstraint

from ..clock import utcnow


class Submission(SQLModel, table=True):
    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint("hackathon_id", "user_id", name="unique_hackathon_user_submission"),
        UniqueConstraint("hackathon_id", "team_id", name="unique_hackathon_team_submission"),
        CheckConstraint(
            "(user_id IS NULL) <> (team_id IS NULL)",
            name="submission_single_owner",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    hackathon_id: int = Field(foreign_key="hackathons.id", index=True)

    # Owner: exactly one of these is set
    user_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    team_id: Optional[int] = Field(default=None, foreign_key="teams.id", index=True)
    created_by: int = Field(foreign_key="users.id")

    # Project
    title: str = Field(default="")
    description: Optional[str] = Field(default=None)
    repo_url: Optional[str] = Field(default=None)  # primary link
    demo_url: Optional[str] = Field(default=None)
    video_url: Optional[str] = Field(default=None)
    tech_stack: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # Lifecycle
    status: str = Field(default="draft", index=True)  # draft, submitted, late
    locked: bool = Field(default=False)
    locked_reason: Optional[str] = Field(default=None)
    submitted_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_final(self) -> bool:
        return self.status in ("submitted", "late")
