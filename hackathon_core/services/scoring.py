import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..adapters.identity import normalize_email
from ..clock import utcnow
from ..errors import Forbidden, InvalidTransition, NotAssigned, NotFound, ValidationError
from ..models.score import RUBRIC_FIELDS, JudgeAssignment, Score
from ..models.submission import Submission
from ..models.user import User
from ..models.winner import Winner
from ..ports.identity import IdentityPort
from .hackathons import get_hackathon, is_hackathon_manager
from .notifications import Broadcaster
from .submissions import SubmissionService

logger = logging.getLogger(__name__)

MIN_RUBRIC_VALUE = 1
MAX_RUBRIC_VALUE = 10


def validate_rubric(rubric: Mapping[str, Any]) -> Dict[str, int]:
    """Return the five rubric values, each an integer from 1 to 10."""
    values = {}
    for name in RUBRIC_FIELDS:
        value = rubric.get(name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"Rubric field '{name}' must be an integer")
        if value < MIN_RUBRIC_VALUE or value > MAX_RUBRIC_VALUE:
            raise ValidationError(
                f"Rubric field '{name}' must be between {MIN_RUBRIC_VALUE} and {MAX_RUBRIC_VALUE}"
            )
        values[name] = value
    return values


def rubric_total(values: Mapping[str, int]) -> float:
    """Mean of the rubric dimensions."""
    return round(sum(values[name] for name in RUBRIC_FIELDS) / len(RUBRIC_FIELDS), 2)


class ScoringService:
    def __init__(
        self,
        db: Session,
        identity: IdentityPort,
        submissions: SubmissionService,
        broadcaster: Optional[Broadcaster] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.identity = identity
        self.submissions = submissions
        self.broadcaster = broadcaster or Broadcaster()
        self.clock = clock

    # ------------------------------------------------------------------
    # Judge assignment
    # ------------------------------------------------------------------

    def _find_assignment(self, hackathon_id: int, judge_id: int) -> Optional[JudgeAssignment]:
        statement = select(JudgeAssignment).where(
            JudgeAssignment.hackathon_id == hackathon_id,
            JudgeAssignment.judge_id == judge_id
        )
        return self.db.exec(statement).first()

    def is_assigned(self, hackathon_id: int, judge_id: int) -> bool:
        return self._find_assignment(hackathon_id, judge_id) is not None

    def assign_judge(self, hackathon_id: int, caller: User, judge_email: str) -> JudgeAssignment:
        """Assign a judge to a hackathon. Assigning twice returns the first row."""
        hackathon = get_hackathon(self.db, hackathon_id)
        if not is_hackathon_manager(caller, hackathon):
            raise Forbidden("Only organizers of this hackathon can assign judges")

        judge = self.identity.find_by_email(normalize_email(judge_email or ""))
        if judge is None or judge.role != "judge":
            raise NotFound("Judge")

        existing = self._find_assignment(hackathon_id, judge.id)
        if existing is not None:
            return existing

        assignment = JudgeAssignment(hackathon_id=hackathon_id, judge_id=judge.id, assigned_at=self.clock())
        try:
            self.db.add(assignment)
            self.db.commit()
        except IntegrityError:
            # Another request assigned the same judge first
            self.db.rollback()
            return self._find_assignment(hackathon_id, judge.id)

        self.db.refresh(assignment)
        logger.info("Judge %s assigned to hackathon %s by user %s", judge.id, hackathon_id, caller.id)
        self.broadcaster.notify(
            judge.id,
            "judge_assignment",
            "Judging assignment",
            f"You have been assigned as a judge for {hackathon.title}.",
            link=f"/hackathons/{hackathon_id}",
        )
        return assignment

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _winners_announced(self, hackathon_id: int) -> bool:
        return self.db.exec(select(Winner.id).where(Winner.hackathon_id == hackathon_id)).first() is not None

    def _find_score(self, submission_id: int, judge_id: int) -> Optional[Score]:
        statement = select(Score).where(Score.submission_id == submission_id, Score.judge_id == judge_id)
        return self.db.exec(statement).first()

    def _apply(self, score: Score, values: Dict[str, int], feedback: Optional[str]) -> None:
        for name, value in values.items():
            setattr(score, name, value)
        score.total = rubric_total(values)
        score.feedback = feedback
        score.updated_at = self.clock()
        self.db.add(score)

    def submit_score(
        self,
        submission_id: int,
        judge_user_id: int,
        rubric: Mapping[str, Any],
        feedback: Optional[str] = None,
    ) -> Score:
        """Create or overwrite the judge's score for a submission."""
        submission = self.db.get(Submission, submission_id)
        if submission is None:
            raise NotFound("Submission", submission_id)
        if not self.is_assigned(submission.hackathon_id, judge_user_id):
            raise NotAssigned()

        values = validate_rubric(rubric)
        if not submission.is_final:
            raise InvalidTransition("Draft submissions cannot be scored")
        if self._winners_announced(submission.hackathon_id):
            raise InvalidTransition("Winners have been announced; scores are final")

        score = self._find_score(submission_id, judge_user_id)
        if score is None:
            score = Score(
                submission_id=submission_id,
                judge_id=judge_user_id,
                hackathon_id=submission.hackathon_id,
                created_at=self.clock(),
                **values,
                total=rubric_total(values),
            )
        self._apply(score, values, feedback)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race for the first insert: overwrite the winner's row
            self.db.rollback()
            score = self._find_score(submission_id, judge_user_id)
            self._apply(score, values, feedback)
            self.db.commit()

        self.db.refresh(score)
        logger.info("Judge %s scored submission %s: %.2f", judge_user_id, submission_id, score.total)
        self.broadcaster.publish("score.submitted", {
            "score_id": score.id,
            "submission_id": submission_id,
            "judge_id": judge_user_id,
            "total": score.total,
        })
        return score

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def aggregate_score(self, submission_id: int) -> Optional[float]:
        """Mean of every judge's total, or None when nobody has scored yet."""
        average = self.db.exec(
            select(func.avg(Score.total)).where(Score.submission_id == submission_id)
        ).one()
        return round(float(average), 2) if average is not None else None

    def aggregate_scores(self, hackathon_id: int) -> Dict[int, Tuple[float, int]]:
        """Map submission id to (average total, judge count)."""
        statement = (
            select(Score.submission_id, func.avg(Score.total), func.count(Score.id))
            .where(Score.hackathon_id == hackathon_id)
            .group_by(Score.submission_id)
        )
        return {
            submission_id: (round(float(average), 2), count)
            for submission_id, average, count in self.db.exec(statement).all()
        }

    def list_scores(self, submission_id: int) -> List[Score]:
        if self.db.get(Submission, submission_id) is None:
            raise NotFound("Submission", submission_id)
        statement = select(Score).where(Score.submission_id == submission_id).order_by(Score.created_at)
        return self.db.exec(statement).all()

    def judge_queue(self, hackathon_id: int, judge_id: int) -> List[Dict[str, Any]]:
        """Finalized submissions of a hackathon with the judge's own score, if any."""
        get_hackathon(self.db, hackathon_id)
        if not self.is_assigned(hackathon_id, judge_id):
            raise NotAssigned()

        statement = (
            select(Submission, Score)
            .outerjoin(Score, and_(Score.submission_id == Submission.id, Score.judge_id == judge_id))
            .where(
                Submission.hackathon_id == hackathon_id,
                Submission.status.in_(("submitted", "late"))
            )
            .order_by(Submission.submitted_at)
        )
        queue = []
        for submission, score in self.db.exec(statement).all():
            queue.append({
                "submission_id": submission.id,
                "title": submission.title,
                "status": submission.status,
                "submitted_at": submission.submitted_at,
                "scored": score is not None,
                "my_total": score.total if score else None,
            })
        return queue
