import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..clock import utcnow
from ..config import REGISTRATION_APPROVAL
from ..errors import (
    Conflict,
    ConsentRequired,
    DeadlinePassed,
    DomainError,
    DuplicateRegistration,
    ValidationError,
)
from ..models.hackathon import Hackathon
from ..models.registration import Registration
from ..models.team import Team
from .hackathons import get_hackathon
from .notifications import Broadcaster

if TYPE_CHECKING:
    from .teams import TeamService

logger = logging.getLogger(__name__)

REGISTRATION_MODES = ("individual", "team")


def initial_registration_status() -> str:
    """One approval policy for every registration path."""
    return "pending" if REGISTRATION_APPROVAL == "manual" else "approved"


def stage_registration(
    db: Session,
    hackathon_id: int,
    user_id: int,
    mode: str,
    team_id: Optional[int] = None,
    consent: bool = True,
    profile: Optional[dict] = None,
) -> Registration:
    """Add a registration and bump the participant counter without committing.

    The caller commits, so the counter and the row land in the same
    transaction. A duplicate (hackathon, user) pair fails on flush/commit.
    """
    registration = Registration(
        hackathon_id=hackathon_id,
        user_id=user_id,
        mode=mode,
        team_id=team_id,
        status=initial_registration_status(),
        consent=consent,
        profile=dict(profile or {}),
    )
    db.add(registration)
    db.exec(
        update(Hackathon)
        .where(Hackathon.id == hackathon_id)
        .values(participant_count=Hackathon.participant_count + 1)
        .execution_options(synchronize_session=False)
    )
    return registration


def find_registration(db: Session, hackathon_id: int, user_id: int) -> Optional[Registration]:
    statement = select(Registration).where(
        Registration.hackathon_id == hackathon_id,
        Registration.user_id == user_id
    )
    return db.exec(statement).first()


@dataclass
class RegistrationResult:
    registration: Registration
    team: Optional[Team] = None
    invited: List[str] = field(default_factory=list)
    failed_invites: Dict[str, str] = field(default_factory=dict)


class RegistrationService:
    def __init__(
        self,
        db: Session,
        teams: "TeamService",
        broadcaster: Optional[Broadcaster] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.teams = teams
        self.broadcaster = broadcaster or Broadcaster()
        self.clock = clock

    def register(
        self,
        hackathon_id: int,
        user_id: int,
        mode: str = "individual",
        team_name: Optional[str] = None,
        member_emails: Iterable[str] = (),
        profile: Optional[Dict[str, Any]] = None,
        consent: bool = False,
    ) -> RegistrationResult:
        """Admit a user into a hackathon, solo or as the leader of a new team.

        Invitations for ``member_emails`` are sent after the registration
        has committed; an invite that fails is reported in
        ``failed_invites`` and never undoes the registration.
        """
        if not consent:
            raise ConsentRequired()
        if mode not in REGISTRATION_MODES:
            raise ValidationError(f"Unknown registration mode '{mode}'")

        hackathon = get_hackathon(self.db, hackathon_id)
        if not hackathon.registration_open(self.clock()):
            raise DeadlinePassed("Registration is closed")

        if mode == "team" and not hackathon.allow_teams:
            raise ValidationError("This hackathon does not accept team registrations")
        if mode == "individual" and not hackathon.allow_individual:
            raise ValidationError("This hackathon only accepts team registrations")

        if find_registration(self.db, hackathon_id, user_id) is not None:
            raise DuplicateRegistration()

        if mode == "team" and (not team_name or not team_name.strip()):
            raise ValidationError("Team name is required for team registrations")

        team = None
        try:
            if mode == "team":
                team, registration = self.teams.open_team(
                    hackathon, user_id, team_name, profile=profile
                )
            else:
                registration = stage_registration(
                    self.db, hackathon_id, user_id, "individual",
                    consent=True, profile=profile,
                )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if find_registration(self.db, hackathon_id, user_id) is not None:
                raise DuplicateRegistration()
            raise Conflict("Registration collided with a concurrent write, please retry")

        self.db.refresh(registration)
        if team is not None:
            self.db.refresh(team)

        logger.info(
            "User %s registered for hackathon %s (%s, %s)",
            user_id, hackathon_id, mode, registration.status
        )
        result = RegistrationResult(registration=registration, team=team)

        self.broadcaster.publish("registration.created", {
            "registration_id": registration.id,
            "hackathon_id": hackathon_id,
            "user_id": user_id,
            "mode": mode,
            "team_id": registration.team_id,
        })
        self.broadcaster.notify(
            user_id,
            "registration",
            "Registration received",
            f"You are registered for {hackathon.title} ({registration.status}).",
            link=f"/hackathons/{hackathon_id}",
        )

        if team is not None:
            self._send_invites(team, user_id, member_emails, result)

        return result

    def _send_invites(
        self,
        team: Team,
        leader_id: int,
        emails: Iterable[str],
        result: RegistrationResult,
    ) -> None:
        seen = set()
        for raw_email in emails:
            email = raw_email.strip().lower()
            if not email or email in seen:
                continue
            seen.add(email)
            try:
                self.teams.invite_member(team.id, leader_id, email)
            except DomainError as exc:
                logger.warning("Invite to %s for team %s failed: %s", email, team.id, exc.message)
                result.failed_invites[email] = exc.message
            else:
                result.invited.append(email)

    def get_registration(self, hackathon_id: int, user_id: int) -> Optional[Registration]:
        return find_registration(self.db, hackathon_id, user_id)

    def list_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        """The user's registrations with hackathon title and team name."""
        statement = (
            select(Registration, Hackathon.title, Team.name)
            .join(Hackathon, Hackathon.id == Registration.hackathon_id)
            .outerjoin(Team, Team.id == Registration.team_id)
            .where(Registration.user_id == user_id)
            .order_by(Registration.created_at.desc())
        )
        return [self._row(*row) for row in self.db.exec(statement).all()]

    def list_for_hackathon(self, hackathon_id: int) -> List[Dict[str, Any]]:
        get_hackathon(self.db, hackathon_id)
        statement = (
            select(Registration, Hackathon.title, Team.name)
            .join(Hackathon, Hackathon.id == Registration.hackathon_id)
            .outerjoin(Team, Team.id == Registration.team_id)
            .where(Registration.hackathon_id == hackathon_id)
            .order_by(Registration.created_at, Registration.id)
        )
        return [self._row(*row) for row in self.db.exec(statement).all()]

    @staticmethod
    def _row(registration: Registration, hackathon_title: str, team_name: Optional[str]) -> Dict[str, Any]:
        return {
            "id": registration.id,
            "hackathon_id": registration.hackathon_id,
            "hackathon_title": hackathon_title,
            "user_id": registration.user_id,
            "mode": registration.mode,
            "team_id": registration.team_id,
            "team_name": team_name,
            "status": registration.status,
            "created_at": registration.created_at,
        }
