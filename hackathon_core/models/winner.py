from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint

from ..clock import utcnow


class Winner(SQLModel, table=True):
    __tablename__ = "winners"
    __table_args__ = (
        UniqueConstraint("hackathon_id", "rank", name="unique_hackathon_rank"),
        UniqueConstraint("hackathon_id", "submission_id", name="unique_hackathon_winner"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    hackathon_id: int = Field(foreign_key="hackathons.id", index=True)
    submission_id: int = Field(foreign_key="submissions.id")
    rank: int
    prize: Optional[str] = Field(default=None)
    announced_at: datetime = Field(default_factory=utcnow)
