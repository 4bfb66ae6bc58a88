from datetime import datetime
from typing import Optional
from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field, UniqueConstraint

from ..clock import utcnow

RUBRIC_FIELDS = ("innovation", "technical", "design", "impact", "presentation")


class JudgeAssignment(SQLModel, table=True):
    __tablename__ = "judge_assignments"
    __table_args__ = (UniqueConstraint("hackathon_id", "judge_id", name="unique_hackathon_judge"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    hackathon_id: int = Field(foreign_key="hackathons.id", index=True)
    judge_id: int = Field(foreign_key="users.id", index=True)
    assigned_at: datetime = Field(default_factory=utcnow)


class Score(SQLModel, table=True):
    __tablename__ = "scores"
    __table_args__ = (
        UniqueConstraint("submission_id", "judge_id", name="unique_submission_judge"),
        *(
            CheckConstraint(f"{name} BETWEEN 1 AND 10", name=f"score_{name}_range")
            for name in RUBRIC_FIELDS
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    submission_id: int = Field(foreign_key="submissions.id", index=True)
    judge_id: int = Field(foreign_key="users.id", index=True)
    hackathon_id: int = Field(foreign_key="hackathons.id", index=True)

    # Rubric, 1-10 each
    innovation: int
    technical: int
    design: int
    impact: int
    presentation: int
    total: float  # mean of the five dimensions

    feedback: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
