from typing import Callable, Optional
from fastapi import Request, Depends
from sqlmodel import Session

from .adapters.events import event_bus
from .adapters.identity import SessionIdentity
from .adapters.notifier import DatabaseNotifier, LogNotifier
from .clock import utcnow
from .config import SESSION_COOKIE_NAME, NOTIFIER
from .database import get_session
from .errors import Forbidden, Unauthorized
from .models.user import User
from .ports.identity import IdentityPort
from .ports.notifier import NotifierPort
from .services.notifications import Broadcaster
from .services.registrations import RegistrationService
from .services.scoring import ScoringService
from .services.submissions import SubmissionService
from .services.teams import TeamService
from .services.winners import WinnerService


def get_clock() -> Callable:
    """Clock used for every deadline check. Overridden in tests."""
    return utcnow


def get_identity(db: Session = Depends(get_session)) -> IdentityPort:
    return SessionIdentity(db)


async def get_current_user(
    request: Request,
    identity: IdentityPort = Depends(get_identity)
) -> Optional[User]:
    """Get the current logged-in user from session cookie."""
    session_token = request.cookies.get(SESSION_COOKIE_NAME)
    if not session_token:
        return None
    return identity.resolve(session_token)


async def require_user(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    """Require a logged-in user."""
    if not current_user:
        raise Unauthorized()
    return current_user


def require_role(*roles: str):
    """Dependency factory: the caller must hold one of ``roles`` (admins always pass)."""
    async def checker(current_user: User = Depends(require_user)) -> User:
        if current_user.is_admin or current_user.role in roles:
            return current_user
        raise Forbidden(f"Requires role: {', '.join(roles)}")
    return checker


def get_notifier(db: Session = Depends(get_session)) -> NotifierPort:
    if NOTIFIER == "log":
        return LogNotifier()
    return DatabaseNotifier(db.get_bind())


def get_broadcaster(notifier: NotifierPort = Depends(get_notifier)) -> Broadcaster:
    return Broadcaster(notifier=notifier, events=event_bus)


# Service factories, one per request

def get_team_service(
    db: Session = Depends(get_session),
    identity: IdentityPort = Depends(get_identity),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    clock: Callable = Depends(get_clock),
) -> TeamService:
    return TeamService(db, identity, broadcaster, clock)


def get_registration_service(
    db: Session = Depends(get_session),
    teams: TeamService = Depends(get_team_service),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    clock: Callable = Depends(get_clock),
) -> RegistrationService:
    return RegistrationService(db, teams, broadcaster, clock)


def get_submission_service(
    db: Session = Depends(get_session),
    registrations: RegistrationService = Depends(get_registration_service),
    teams: TeamService = Depends(get_team_service),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    clock: Callable = Depends(get_clock),
) -> SubmissionService:
    return SubmissionService(db, registrations, teams, broadcaster, clock)


def get_scoring_service(
    db: Session = Depends(get_session),
    identity: IdentityPort = Depends(get_identity),
    submissions: SubmissionService = Depends(get_submission_service),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    clock: Callable = Depends(get_clock),
) -> ScoringService:
    return ScoringService(db, identity, submissions, broadcaster, clock)


def get_winner_service(
    db: Session = Depends(get_session),
    scoring: ScoringService = Depends(get_scoring_service),
    submissions: SubmissionService = Depends(get_submission_service),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    clock: Callable = Depends(get_clock),
) -> WinnerService:
    return WinnerService(db, scoring, submissions, broadcaster, clock)
