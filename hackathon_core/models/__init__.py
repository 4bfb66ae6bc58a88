from .user import User
from .session import UserSession
from .hackathon import Hackathon
from .registration import Registration
from .team import Team, TeamMember
from .submission import Submission
from .score import JudgeAssignment, Score, RUBRIC_FIELDS
from .winner import Winner
from .notification import Notification

__all__ = [
    "User",
    "UserSession",
    "Hackathon",
    "Registration",
    "Team",
    "TeamMember",
    "Submission",
    "JudgeAssignment",
    "Score",
    "RUBRIC_FIELDS",
    "Winner",
    "Notification",
]
