import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..clock import utcnow
from ..config import LATE_SUBMISSION_GRACE_HOURS
from ..errors import (
    DeadlinePassed,
    DuplicateSubmission,
    Forbidden,
    LateWindowClosed,
    NotEditable,
    NotFound,
    NotRegistered,
    ValidationError,
)
from ..models.hackathon import Hackathon
from ..models.score import JudgeAssignment
from ..models.submission import Submission
from ..models.team import Team, TeamMember
from ..models.user import User
from .hackathons import get_hackathon, is_hackathon_manager
from .notifications import Broadcaster
from .registrations import RegistrationService
from .teams import TeamService

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "repo_url", "demo_url", "video_url", "tech_stack")
FINALIZE_ACTIONS = ("submit", "save_draft")


def clean_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Keep known fields, strip strings and normalise the tech stack list."""
    cleaned = {}
    for key, value in patch.items():
        if key not in EDITABLE_FIELDS:
            continue
        if key == "tech_stack":
            value = [str(item).strip() for item in (value or []) if str(item).strip()]
        elif isinstance(value, str):
            value = value.strip()
        cleaned[key] = value
    return cleaned


class SubmissionService:
    def __init__(
        self,
        db: Session,
        registrations: RegistrationService,
        teams: TeamService,
        broadcaster: Optional[Broadcaster] = None,
        clock: Callable = utcnow,
        grace_hours: int = LATE_SUBMISSION_GRACE_HOURS,
    ):
        self.db = db
        self.registrations = registrations
        self.teams = teams
        self.broadcaster = broadcaster or Broadcaster()
        self.clock = clock
        self.grace = timedelta(hours=grace_hours)

    # ------------------------------------------------------------------
    # Ownership
    # ------------------------------------------------------------------

    def _get(self, submission_id: int) -> Submission:
        submission = self.db.get(Submission, submission_id)
        if submission is None:
            raise NotFound("Submission", submission_id)
        return submission

    def _is_team_member(self, team_id: int, user_id: int) -> bool:
        member = self.teams.get_member(team_id, user_id)
        return member is not None and member.status == "joined"

    def _ensure_owner(self, submission: Submission, user_id: int) -> None:
        """The owning user, or the leader of the owning team."""
        if submission.user_id is not None:
            if submission.user_id != user_id:
                raise Forbidden("Only the owner can modify this submission")
            return
        team = self.teams.get_team(submission.team_id)
        if team.leader_id != user_id:
            raise Forbidden("Only the team leader can modify this submission")

    def can_view(self, submission: Submission, user: User) -> bool:
        if submission.user_id == user.id:
            return True
        if submission.team_id is not None and self._is_team_member(submission.team_id, user.id):
            return True
        hackathon = get_hackathon(self.db, submission.hackathon_id)
        if is_hackathon_manager(user, hackathon):
            return True
        assignment = self.db.exec(
            select(JudgeAssignment).where(
                JudgeAssignment.hackathon_id == submission.hackathon_id,
                JudgeAssignment.judge_id == user.id
            )
        ).first()
        return assignment is not None

    def _ensure_before_end(self, hackathon: Hackathon) -> None:
        if self.clock() > hackathon.end_at:
            raise DeadlinePassed("Hackathon has ended")

    # ------------------------------------------------------------------
    # Draft lifecycle
    # ------------------------------------------------------------------

    def create_draft(self, hackathon_id: int, user_id: int, payload: Dict[str, Any]) -> Submission:
        hackathon = get_hackathon(self.db, hackathon_id)
        registration = self.registrations.get_registration(hackathon_id, user_id)
        if registration is None or registration.status != "approved":
            raise NotRegistered()

        self._ensure_before_end(hackathon)

        owner = {"user_id": user_id}
        if registration.mode == "team":
            if registration.team_id is None or not self._is_team_member(registration.team_id, user_id):
                raise NotRegistered("Not a member of a team for this hackathon")
            owner = {"team_id": registration.team_id}

        existing = self.db.exec(
            select(Submission.id).where(
                Submission.hackathon_id == hackathon_id,
                *[getattr(Submission, key) == value for key, value in owner.items()]
            )
        ).first()
        if existing is not None:
            raise DuplicateSubmission()

        now = self.clock()
        submission = Submission(
            hackathon_id=hackathon_id,
            created_by=user_id,
            status="draft",
            created_at=now,
            updated_at=now,
            **owner,
            **clean_patch(payload or {}),
        )
        try:
            self.db.add(submission)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateSubmission()

        self.db.refresh(submission)
        logger.info("Submission %s drafted for hackathon %s by user %s", submission.id, hackathon_id, user_id)
        self.broadcaster.publish("submission.created", {
            "submission_id": submission.id,
            "hackathon_id": hackathon_id,
            "user_id": submission.user_id,
            "team_id": submission.team_id,
        })
        return submission

    def update_draft(self, submission_id: int, caller_user_id: int, patch: Dict[str, Any]) -> Submission:
        submission = self._get(submission_id)
        self._ensure_owner(submission, caller_user_id)
        hackathon = get_hackathon(self.db, submission.hackathon_id)
        self._ensure_before_end(hackathon)
        if submission.status != "draft" or submission.locked:
            raise NotEditable("Submission is no longer editable")

        values = clean_patch(patch or {})
        values["updated_at"] = self.clock()
        result = self.db.exec(
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status == "draft",
                Submission.locked == False  # noqa: E712
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise NotEditable("Submission is no longer editable")
        self.db.commit()
        self.db.refresh(submission)
        logger.info("Submission %s updated by user %s", submission_id, caller_user_id)
        return submission

    def finalize(self, submission_id: int, caller_user_id: int, action: str = "submit") -> Submission:
        """Submit a draft, marking it late inside the grace window.

        ``save_draft`` only checks ownership and returns the draft as is.
        """
        if action not in FINALIZE_ACTIONS:
            raise ValidationError(f"Unknown action '{action}'")

        submission = self._get(submission_id)
        self._ensure_owner(submission, caller_user_id)
        if action == "save_draft":
            return submission

        if submission.status != "draft" or submission.locked:
            raise NotEditable("Submission is no longer editable")
        if not submission.title or not submission.repo_url:
            raise ValidationError("A title and a project link are required to submit")

        hackathon = get_hackathon(self.db, submission.hackathon_id)
        now = self.clock()
        is_late = now > hackathon.end_at
        if is_late and now > hackathon.end_at + self.grace:
            raise LateWindowClosed()

        new_status = "late" if is_late else "submitted"
        result = self.db.exec(
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status == "draft",
                Submission.locked == False  # noqa: E712
            )
            .values(status=new_status, submitted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            raise NotEditable("Submission is no longer editable")
        self.db.commit()
        self.db.refresh(submission)

        logger.info("Submission %s finalized as %s by user %s", submission_id, new_status, caller_user_id)
        self.broadcaster.notify(
            caller_user_id,
            "submission",
            "Submission received",
            f"Your project '{submission.title}' was {new_status} for {hackathon.title}.",
            link=f"/submissions/{submission_id}",
        )
        self.broadcaster.publish("submission.finalized", {
            "submission_id": submission_id,
            "hackathon_id": hackathon.id,
            "status": new_status,
        })
        return submission

    # ------------------------------------------------------------------
    # Organizer overrides
    # ------------------------------------------------------------------

    def _ensure_manager(self, submission: Submission, caller: User) -> Hackathon:
        hackathon = get_hackathon(self.db, submission.hackathon_id)
        if not is_hackathon_manager(caller, hackathon):
            raise Forbidden("Only organizers of this hackathon can do this")
        return hackathon

    def set_lock(self, submission_id: int, caller: User, locked: bool, reason: Optional[str] = None) -> Submission:
        submission = self._get(submission_id)
        self._ensure_manager(submission, caller)

        submission.locked = locked
        submission.locked_reason = reason if locked else None
        submission.updated_at = self.clock()
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)
        logger.info("Submission %s %s by user %s", submission_id, "locked" if locked else "unlocked", caller.id)
        return submission

    def reopen(self, submission_id: int, caller: User) -> Submission:
        submission = self._get(submission_id)
        self._ensure_manager(submission, caller)

        submission.status = "draft"
        submission.submitted_at = None
        submission.locked = False
        submission.locked_reason = None
        submission.updated_at = self.clock()
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)
        logger.info("Submission %s reopened by user %s", submission_id, caller.id)
        return submission

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_submission(self, submission_id: int, viewer: Optional[User] = None) -> Submission:
        submission = self._get(submission_id)
        if viewer is not None and not self.can_view(submission, viewer):
            raise Forbidden("Not allowed to view this submission")
        return submission

    def list_for_hackathon(self, hackathon_id: int, final_only: bool = False) -> List[Submission]:
        get_hackathon(self.db, hackathon_id)
        statement = select(Submission).where(Submission.hackathon_id == hackathon_id)
        if final_only:
            statement = statement.where(Submission.status.in_(("submitted", "late")))
        return self.db.exec(statement.order_by(Submission.id)).all()

    def list_for_user(self, user_id: int) -> List[Submission]:
        """Own submissions plus those of every team the user has joined."""
        team_ids = select(TeamMember.team_id).where(
            TeamMember.user_id == user_id,
            TeamMember.status == "joined"
        )
        statement = (
            select(Submission)
            .where(or_(Submission.user_id == user_id, Submission.team_id.in_(team_ids)))
            .order_by(Submission.updated_at.desc())
        )
        return self.db.exec(statement).all()

    def owner_user_ids(self, submission: Submission) -> List[int]:
        """Users to notify about a submission."""
        if submission.user_id is not None:
            return [submission.user_id]
        statement = select(TeamMember.user_id).where(
            TeamMember.team_id == submission.team_id,
            TeamMember.status == "joined"
        ).order_by(TeamMember.id)
        return list(self.db.exec(statement).all())

    def owner_name(self, submission: Submission) -> str:
        if submission.team_id is not None:
            team = self.db.get(Team, submission.team_id)
            return team.name if team else ""
        user = self.db.get(User, submission.user_id)
        return user.display_name or user.email if user else ""
