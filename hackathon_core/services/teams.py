import logging
import random
import string
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func, update, delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..adapters.identity import normalize_email
from ..clock import utcnow
from ..config import JOIN_CODE_LENGTH, JOIN_CODE_ATTEMPTS
from ..errors import (
    AlreadyInvited,
    AlreadyMember,
    AlreadyRegistered,
    Conflict,
    DeadlinePassed,
    Forbidden,
    InvalidTransition,
    NotFound,
    TeamFull,
    TeamLocked,
    ValidationError,
)
from ..models.hackathon import Hackathon
from ..models.registration import Registration
from ..models.team import Team, TeamMember
from ..ports.identity import IdentityPort
from .hackathons import get_hackathon
from .notifications import Broadcaster
from .registrations import find_registration, stage_registration

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROLE_ACTIONS = ("promote", "demote", "remove")


def generate_join_code(length: int = JOIN_CODE_LENGTH) -> str:
    """Generate a random alphanumeric join code."""
    return ''.join(random.choices(JOIN_CODE_ALPHABET, k=length))


def normalize_join_code(code: str) -> str:
    return code.strip().upper()


class TeamService:
    def __init__(
        self,
        db: Session,
        identity: IdentityPort,
        broadcaster: Optional[Broadcaster] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.identity = identity
        self.broadcaster = broadcaster or Broadcaster()
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_team(self, team_id: int) -> Team:
        team = self.db.get(Team, team_id)
        if team is None:
            raise NotFound("Team", team_id)
        return team

    def list_teams(self, hackathon_id: int) -> List[Team]:
        statement = select(Team).where(Team.hackathon_id == hackathon_id).order_by(Team.name)
        return self.db.exec(statement).all()

    def list_members(self, team_id: int) -> List[TeamMember]:
        statement = (
            select(TeamMember)
            .where(TeamMember.team_id == team_id)
            .order_by(TeamMember.role, TeamMember.id)
        )
        return self.db.exec(statement).all()

    def team_for_user(self, hackathon_id: int, user_id: int) -> Optional[Team]:
        """The team the user has joined in this hackathon, if any."""
        statement = (
            select(Team)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(
                Team.hackathon_id == hackathon_id,
                TeamMember.user_id == user_id,
                TeamMember.status == "joined"
            )
        )
        return self.db.exec(statement).first()

    def get_member(self, team_id: int, user_id: int) -> Optional[TeamMember]:
        statement = select(TeamMember).where(
            TeamMember.team_id == team_id,
            TeamMember.user_id == user_id
        )
        return self.db.exec(statement).first()

    def joined_count(self, team_id: int) -> int:
        return self.db.exec(
            select(func.count(TeamMember.id))
            .where(TeamMember.team_id == team_id, TeamMember.status == "joined")
        ).one()

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _lock_team(self, team_id: int) -> Team:
        """Load the team row under FOR UPDATE for the rest of the transaction.

        SQLite ignores the clause; its writers are serialized anyway.
        """
        statement = (
            select(Team)
            .where(Team.id == team_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        team = self.db.exec(statement).first()
        if team is None:
            raise NotFound("Team", team_id)
        return team

    def _ensure_open(self, team: Team, hackathon: Hackathon) -> None:
        """Teams freeze once registration closes; the flag is set on first touch."""
        if team.locked:
            raise TeamLocked()
        if not hackathon.registration_open(self.clock()):
            team.locked = True
            self.db.add(team)
            self.db.commit()
            logger.info("Team %s locked after registration deadline", team.id)
            raise TeamLocked()

    def _ensure_capacity(self, team: Team, hackathon: Hackathon) -> None:
        if self.joined_count(team.id) >= hackathon.max_team_size:
            raise TeamFull(hackathon.max_team_size)

    def _recheck_capacity(self, team: Team, hackathon: Hackathon) -> None:
        """Count again after the write, inside the same transaction."""
        self.db.flush()
        if self.joined_count(team.id) > hackathon.max_team_size:
            self.db.rollback()
            raise TeamFull(hackathon.max_team_size)

    def _ensure_not_in_other_team(self, team: Team, user_id: int) -> None:
        other = self.team_for_user(team.hackathon_id, user_id)
        if other is not None and other.id != team.id:
            raise AlreadyRegistered("User already belongs to another team in this hackathon")

    def _ensure_not_registered_elsewhere(self, team: Team, user_id: int) -> None:
        """An individual registration, or one tied to another team, blocks joining."""
        registration = find_registration(self.db, team.hackathon_id, user_id)
        if registration is None:
            return
        if registration.mode != "team" or registration.team_id != team.id:
            raise AlreadyRegistered("User is already registered for this hackathon outside this team")

    def _ensure_team_registration(self, team: Team, user_id: int) -> None:
        if find_registration(self.db, team.hackathon_id, user_id) is None:
            stage_registration(self.db, team.hackathon_id, user_id, "team", team_id=team.id)

    def _unique_join_code(self) -> str:
        for _ in range(JOIN_CODE_ATTEMPTS):
            code = generate_join_code()
            taken = self.db.exec(select(Team.id).where(Team.join_code == code)).first()
            if taken is None:
                return code
        raise Conflict("Could not generate a unique join code")

    # ------------------------------------------------------------------
    # Team creation
    # ------------------------------------------------------------------

    def open_team(
        self,
        hackathon: Hackathon,
        leader_user_id: int,
        name: str,
        profile: Optional[dict] = None,
    ) -> Tuple[Team, Registration]:
        """Stage a team, its leader row and the leader's registration.

        Nothing is committed; ``create_team`` and team-mode registration
        commit the three rows together.
        """
        if not hackathon.allow_teams:
            raise ValidationError("This hackathon does not accept teams")
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name is required")
        if find_registration(self.db, hackathon.id, leader_user_id) is not None:
            raise AlreadyRegistered()
        if not hackathon.registration_open(self.clock()):
            raise DeadlinePassed("Registration is closed")

        leader = self.identity.get_user(leader_user_id)
        if leader is None:
            raise NotFound("User", leader_user_id)

        team = Team(
            hackathon_id=hackathon.id,
            name=name,
            join_code=self._unique_join_code(),
            leader_id=leader.id,
        )
        self.db.add(team)
        self.db.flush()

        now = self.clock()
        self.db.add(TeamMember(
            team_id=team.id,
            user_id=leader.id,
            email=leader.email,
            role="leader",
            status="joined",
            invited_at=now,
            responded_at=now,
        ))
        registration = stage_registration(
            self.db, hackathon.id, leader.id, "team",
            team_id=team.id, consent=True, profile=profile,
        )
        return team, registration

    def create_team(self, hackathon_id: int, leader_user_id: int, name: str) -> Team:
        hackathon = get_hackathon(self.db, hackathon_id)
        try:
            team, _ = self.open_team(hackathon, leader_user_id, name)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if find_registration(self.db, hackathon_id, leader_user_id) is not None:
                raise AlreadyRegistered()
            raise Conflict("Team creation collided with a concurrent write, please retry")

        self.db.refresh(team)
        logger.info("Team %s (%s) created by user %s", team.id, team.name, leader_user_id)
        self.broadcaster.publish("team.created", {
            "team_id": team.id,
            "hackathon_id": hackathon_id,
            "leader_id": leader_user_id,
        })
        return team

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def invite_member(self, team_id: int, caller_user_id: int, email: str) -> TeamMember:
        email = normalize_email(email or "")
        if "@" not in email:
            raise ValidationError("A valid email address is required")

        team = self._lock_team(team_id)
        if team.leader_id != caller_user_id:
            raise Forbidden("Only the team leader can invite members")

        hackathon = get_hackathon(self.db, team.hackathon_id)
        self._ensure_open(team, hackathon)
        self._ensure_capacity(team, hackathon)

        existing = self.db.exec(
            select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.email == email)
        ).first()
        if existing is not None:
            if existing.status == "joined":
                raise AlreadyMember()
            raise AlreadyInvited(email)

        try:
            user = self.identity.provision_user(email)
            if self.get_member(team_id, user.id) is not None:
                raise AlreadyMember()
            member = TeamMember(
                team_id=team_id,
                user_id=user.id,
                email=email,
                role="member",
                status="invited",
                invited_at=self.clock(),
            )
            self.db.add(member)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyInvited(email)

        self.db.refresh(member)
        self.db.refresh(team)
        logger.info("User %s invited %s to team %s", caller_user_id, email, team_id)

        self.broadcaster.notify(
            member.user_id,
            "team_invite",
            f"Invitation to join {team.name}",
            f"You have been invited to join team {team.name}. Join code: {team.join_code}",
            link=f"/teams/{team_id}",
        )
        self.broadcaster.publish("team.member_invited", {
            "team_id": team_id,
            "member_id": member.id,
            "user_id": member.user_id,
        })
        return member

    def respond_to_invite(
        self,
        team_id: int,
        user_id: int,
        accept: bool,
        member_id: Optional[int] = None,
    ) -> TeamMember:
        """Accept or decline the caller's own invitation.

        The status flip is a compare-and-set on ``invited`` so two racing
        responses cannot both win.
        """
        if member_id is not None:
            member = self.db.get(TeamMember, member_id)
            if member is None or member.team_id != team_id:
                raise NotFound("Team member", member_id)
            if member.user_id != user_id:
                raise Forbidden("Only the invited user can respond to this invitation")
        else:
            member = self.get_member(team_id, user_id)
            if member is None:
                raise NotFound("Invitation")

        if member.status != "invited":
            raise InvalidTransition(f"Invitation already {member.status}")

        team = self._lock_team(team_id)
        hackathon = get_hackathon(self.db, team.hackathon_id)
        if accept:
            self._ensure_open(team, hackathon)
            self._ensure_capacity(team, hackathon)
            self._ensure_not_in_other_team(team, user_id)
            self._ensure_not_registered_elsewhere(team, user_id)

        new_status = "joined" if accept else "declined"
        try:
            result = self.db.exec(
                update(TeamMember)
                .where(TeamMember.id == member.id, TeamMember.status == "invited")
                .values(status=new_status, responded_at=self.clock())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                self.db.refresh(member)
                raise InvalidTransition(f"Invitation already {member.status}")

            if accept:
                self._ensure_team_registration(team, user_id)
                self._recheck_capacity(team, hackathon)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Invitation response collided with a concurrent write, please retry")

        self.db.refresh(member)
        self.db.refresh(team)
        logger.info("User %s %s invitation to team %s", user_id, new_status, team_id)

        self.broadcaster.notify(
            team.leader_id,
            "invite_response",
            f"Invitation {new_status}",
            f"{member.email} has {'joined' if accept else 'declined to join'} team {team.name}.",
            link=f"/teams/{team_id}",
        )
        self.broadcaster.publish(f"team.member_{new_status}", {
            "team_id": team_id,
            "member_id": member.id,
            "user_id": user_id,
        })
        return member

    def join_by_code(self, code: str, user_id: int) -> TeamMember:
        code = normalize_join_code(code or "")
        found = self.db.exec(select(Team).where(Team.join_code == code)).first()
        if found is None:
            raise NotFound("Team with this join code")

        team = self._lock_team(found.id)
        hackathon = get_hackathon(self.db, team.hackathon_id)
        self._ensure_open(team, hackathon)
        if self.get_member(team.id, user_id) is not None:
            raise AlreadyMember()
        self._ensure_not_in_other_team(team, user_id)
        self._ensure_not_registered_elsewhere(team, user_id)
        self._ensure_capacity(team, hackathon)

        user = self.identity.get_user(user_id)
        if user is None:
            raise NotFound("User", user_id)

        now = self.clock()
        member = TeamMember(
            team_id=team.id,
            user_id=user_id,
            email=user.email,
            role="member",
            status="joined",
            invited_at=now,
            responded_at=now,
        )
        try:
            self.db.add(member)
            self._ensure_team_registration(team, user_id)
            self._recheck_capacity(team, hackathon)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AlreadyMember()

        self.db.refresh(member)
        logger.info("User %s joined team %s by code", user_id, team.id)

        self.broadcaster.notify(
            team.leader_id,
            "team_join",
            "New team member",
            f"{user.email} joined team {team.name}.",
            link=f"/teams/{team.id}",
        )
        self.broadcaster.publish("team.member_joined", {
            "team_id": team.id,
            "member_id": member.id,
            "user_id": user_id,
        })
        return member

    # ------------------------------------------------------------------
    # Leadership and removal
    # ------------------------------------------------------------------

    def change_member_role(
        self,
        team_id: int,
        caller_user_id: int,
        target_member_id: int,
        action: str,
    ) -> Optional[TeamMember]:
        """Promote, demote or remove a member. Returns None for ``remove``.

        Promoting a member hands leadership over: the caller is demoted and
        the target promoted in one transaction, so a team never has zero or
        two leaders.
        """
        if action not in ROLE_ACTIONS:
            raise ValidationError(f"Unknown action '{action}'")

        team = self._lock_team(team_id)
        if team.leader_id != caller_user_id:
            raise Forbidden("Only the team leader can manage members")

        target = self.db.get(TeamMember, target_member_id)
        if target is None or target.team_id != team_id:
            raise NotFound("Team member", target_member_id)

        if action == "remove":
            return self._remove_member(team, target)
        if action == "demote":
            if target.role != "leader":
                return target
            raise InvalidTransition("A team needs a leader; promote another member instead")

        # promote
        if target.role == "leader":
            return target
        if target.status != "joined":
            raise InvalidTransition("Only joined members can be promoted")

        leader_row = self.get_member(team_id, caller_user_id)
        try:
            # Demote first so the single-leader index never sees two leaders
            leader_row.role = "member"
            self.db.add(leader_row)
            self.db.flush()

            target.role = "leader"
            team.leader_id = target.user_id
            self.db.add(target)
            self.db.add(team)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Leadership changed concurrently, please retry")

        self.db.refresh(target)
        logger.info("Team %s leadership moved from user %s to user %s", team_id, caller_user_id, target.user_id)
        self.broadcaster.notify(
            target.user_id,
            "team_role",
            "You are now team leader",
            f"Leadership of team {team.name} has been transferred to you.",
            link=f"/teams/{team_id}",
        )
        self.broadcaster.publish("team.role_changed", {
            "team_id": team_id,
            "leader_id": target.user_id,
            "previous_leader_id": caller_user_id,
        })
        return target

    def _remove_member(self, team: Team, target: TeamMember) -> None:
        if target.role == "leader":
            raise InvalidTransition("Cannot remove the team leader; demote first")

        user_id = target.user_id
        self.db.delete(target)
        removed = self.db.exec(
            delete(Registration)
            .where(
                Registration.hackathon_id == team.hackathon_id,
                Registration.user_id == user_id,
                Registration.team_id == team.id,
            )
            .execution_options(synchronize_session=False)
        )
        if removed.rowcount:
            self.db.exec(
                update(Hackathon)
                .where(Hackathon.id == team.hackathon_id)
                .values(participant_count=Hackathon.participant_count - 1)
                .execution_options(synchronize_session=False)
            )
        self.db.commit()

        logger.info("User %s removed from team %s", user_id, team.id)
        self.broadcaster.notify(
            user_id,
            "team_removed",
            "Removed from team",
            f"You have been removed from team {team.name}.",
        )
        self.broadcaster.publish("team.member_removed", {"team_id": team.id, "user_id": user_id})
        return None
