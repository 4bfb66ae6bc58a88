import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..clock import utcnow
from ..errors import Conflict, Forbidden, ValidationError
from ..models.submission import Submission
from ..models.user import User
from ..models.winner import Winner
from .hackathons import get_hackathon, is_hackathon_manager
from .notifications import Broadcaster
from .scoring import ScoringService
from .submissions import SubmissionService

logger = logging.getLogger(__name__)


def ordinal(rank: int) -> str:
    """1 -> 1st, 2 -> 2nd, 11 -> 11th"""
    if 10 <= rank % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(rank % 10, "th")
    return f"{rank}{suffix}"


class WinnerService:
    def __init__(
        self,
        db: Session,
        scoring: ScoringService,
        submissions: SubmissionService,
        broadcaster: Optional[Broadcaster] = None,
        clock: Callable = utcnow,
    ):
        self.db = db
        self.scoring = scoring
        self.submissions = submissions
        self.broadcaster = broadcaster or Broadcaster()
        self.clock = clock

    def standings(self, hackathon_id: int) -> List[Dict[str, Any]]:
        """
        Rank finalized submissions of a hackathon.

        Sorted by: aggregate score desc > earlier submitted_at. Submissions
        nobody has scored yet come last.
        """
        submissions = self.submissions.list_for_hackathon(hackathon_id, final_only=True)
        aggregates = self.scoring.aggregate_scores(hackathon_id)

        rows = []
        for submission in submissions:
            average, judges = aggregates.get(submission.id, (None, 0))
            rows.append({
                "submission_id": submission.id,
                "title": submission.title,
                "owner": self.submissions.owner_name(submission),
                "team_id": submission.team_id,
                "user_id": submission.user_id,
                "status": submission.status,
                "submitted_at": submission.submitted_at,
                "score": average,
                "judges": judges,
            })

        rows.sort(key=lambda r: (
            r["score"] is None,
            -(r["score"] or 0),
            r["submitted_at"] or datetime.max,
        ))
        for position, row in enumerate(rows, start=1):
            row["position"] = position
        return rows

    def _validate(self, hackathon_id: int, winners: Sequence[Dict[str, Any]]) -> Dict[int, Submission]:
        if not winners:
            raise ValidationError("At least one winner is required")

        ranks = [w.get("rank") for w in winners]
        submission_ids = [w.get("submission_id") for w in winners]
        for rank in ranks:
            if isinstance(rank, bool) or not isinstance(rank, int) or rank < 1:
                raise ValidationError("Ranks must be positive integers")
        if len(set(ranks)) != len(ranks):
            raise ValidationError("Ranks must be unique")
        if len(set(submission_ids)) != len(submission_ids):
            raise ValidationError("A submission can only win once")

        found = self.db.exec(
            select(Submission).where(
                Submission.id.in_(submission_ids),
                Submission.hackathon_id == hackathon_id
            )
        ).all()
        by_id = {s.id: s for s in found}
        for submission_id in submission_ids:
            submission = by_id.get(submission_id)
            if submission is None:
                raise ValidationError(f"Submission {submission_id} does not belong to this hackathon")
            if not submission.is_final:
                raise ValidationError(f"Submission {submission_id} has not been submitted")
        return by_id

    def announce(self, hackathon_id: int, caller: User, winners: Sequence[Dict[str, Any]]) -> List[Winner]:
        """Replace the hackathon's winner set and notify the winners."""
        hackathon = get_hackathon(self.db, hackathon_id)
        if not is_hackathon_manager(caller, hackathon):
            raise Forbidden("Only organizers of this hackathon can announce winners")

        by_id = self._validate(hackathon_id, winners)

        now = self.clock()
        rows = [
            Winner(
                hackathon_id=hackathon_id,
                submission_id=w["submission_id"],
                rank=w["rank"],
                prize=w.get("prize"),
                announced_at=now,
            )
            for w in sorted(winners, key=lambda w: w["rank"])
        ]
        try:
            self.db.exec(
                delete(Winner)
                .where(Winner.hackathon_id == hackathon_id)
                .execution_options(synchronize_session=False)
            )
            for row in rows:
                self.db.add(row)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Winners were announced concurrently, please retry")

        for row in rows:
            self.db.refresh(row)
        logger.info("Announced %d winners for hackathon %s", len(rows), hackathon_id)

        for row in rows:
            submission = by_id[row.submission_id]
            prize = f" ({row.prize})" if row.prize else ""
            for user_id in self.submissions.owner_user_ids(submission):
                self.broadcaster.notify(
                    user_id,
                    "winner",
                    f"You placed {ordinal(row.rank)}!",
                    f"'{submission.title}' placed {ordinal(row.rank)} in {hackathon.title}{prize}.",
                    link=f"/hackathons/{hackathon_id}/winners",
                )
        self.broadcaster.publish("winners.announced", {
            "hackathon_id": hackathon_id,
            "winners": [{"submission_id": r.submission_id, "rank": r.rank} for r in rows],
        })
        return rows

    def get_winners(self, hackathon_id: int) -> List[Dict[str, Any]]:
        get_hackathon(self.db, hackathon_id)
        statement = (
            select(Winner, Submission)
            .join(Submission, Submission.id == Winner.submission_id)
            .where(Winner.hackathon_id == hackathon_id)
            .order_by(Winner.rank)
        )
        return [
            {
                "rank": winner.rank,
                "place": ordinal(winner.rank),
                "prize": winner.prize,
                "submission_id": submission.id,
                "title": submission.title,
                "owner": self.submissions.owner_name(submission),
                "repo_url": submission.repo_url,
                "announced_at": winner.announced_at,
            }
            for winner, submission in self.db.exec(statement).all()
        ]
