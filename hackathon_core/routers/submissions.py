from datetime import datetime
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ..dependencies import require_user, get_submission_service, get_scoring_service
from ..models.submission import Submission
from ..models.user import User
from ..services.scoring import ScoringService
from ..services.submissions import SubmissionService

router = APIRouter(prefix="/submissions", tags=["submissions"])


class SubmissionCreate(BaseModel):
    """Schema for creating a draft submission."""
    hackathon_id: int
    title: str = ""
    description: Optional[str] = None
    repo_url: Optional[str] = None
    demo_url: Optional[str] = None
    video_url: Optional[str] = None
    tech_stack: List[str] = []


class SubmissionPatch(BaseModel):
    """Partial update of a draft; omitted fields are left untouched."""
    title: Optional[str] = None
    description: Optional[str] = None
    repo_url: Optional[str] = None
    demo_url: Optional[str] = None
    video_url: Optional[str] = None
    tech_stack: Optional[List[str]] = None


class FinalizeRequest(BaseModel):
    action: Literal["submit", "save_draft"] = "submit"


class LockRequest(BaseModel):
    locked: bool = True
    reason: Optional[str] = None


class SubmissionOut(BaseModel):
    id: int
    hackathon_id: int
    user_id: Optional[int]
    team_id: Optional[int]
    title: str
    description: Optional[str]
    repo_url: Optional[str]
    demo_url: Optional[str]
    video_url: Optional[str]
    tech_stack: List[str]
    status: str
    locked: bool
    locked_reason: Optional[str]
    submitted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class ScoreOut(BaseModel):
    id: int
    submission_id: int
    judge_id: int
    innovation: int
    technical: int
    design: int
    impact: int
    presentation: int
    total: float
    feedback: Optional[str]
    updated_at: datetime


def submission_out(submission: Submission) -> SubmissionOut:
    return SubmissionOut.model_validate(submission, from_attributes=True)


@router.get("/mine", response_model=List[SubmissionOut])
async def my_submissions(
    current_user: User = Depends(require_user),
    submissions: SubmissionService = Depends(get_submission_service)
):
    """Own submissions and those of the caller's teams."""
    return [submission_out(s) for s in submissions.list_for_user(current_user.id)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_submission(
    data: SubmissionCreate,
    current_user: User = Depends(require_user),
    submissions: SubmissionService = Depends(get_submission_service)
):
    payload = data.model_dump(exclude={"hackathon_id"})
    submission = submissions.create_draft(data.hackathon_id, current_user.id, payload)
    return {"submission": submission_out(submission)}


@router.patch("/{submission_id}")
async def update_submission(
    submission_id: int,
    data: SubmissionPatch,
    current_user: User = Depends(require_user),
    submissions: SubmissionService = Depends(get_submission_service)
):
    submission = submissions.update_draft(
        submission_id, current_user.id, data.model_dump(exclude_unset=True)
    )
    return {"submission": submission_out(submission)}


@router.put("/{submission_id}")
async def finalize_submission(
    submission_id: int,
    data: FinalizeRequest,
    current_user: User = Depends(require_user),
    submissions: SubmissionService = Depends(get_submission_service)
):
    submission = submissions.finalize(submission_id, current_user.id, data.action)
    return {"status": submission.status, "submitted_at": submission.submitted_at}


@router.get("/{submission_id}")
async def get_submission(
    submission_id: int,
    current_user: User = Depends(require_user),
    submissions: SubmissionService = Depends(get_submission_service),
    scoring: ScoringService = Depends(get_scoring_service)
):
    submission = submissions.get_submission(submission_id, viewer=current_user)
    return {
        "submission": submission_out(submission),
        "aggregate_score": scoring.aggregate_score(submission_id)
    }


@router.put("/{submission_id}/lock")
async def lock_submission(
    submission_id: int,
    data: LockRequest,
    current_user: User = Depends(require_user),
    submissions: SubmissionService = Depends(get_submission_service)
):
    """Organizer lock / unlock."""
    submission = submissions.set_lock(submission_id, current_user, data.locked, data.reason)
    return {"submission": submission_out(submission)}


@router.post("/{submission_id}/reopen")
async def reopen_submission(
    submission_id: int,
    current_user: User = Depends(require_user),
    submissions: SubmissionService = Depends(get_submission_service)
):
    submission = submissions.reopen(submission_id, current_user)
    return {"submission": submission_out(submission)}


@router.get("/{submission_id}/scores", response_model=List[ScoreOut])
async def list_scores(
    submission_id: int,
    current_user: User = Depends(require_user),
    submissions: SubmissionService = Depends(get_submission_service),
    scoring: ScoringService = Depends(get_scoring_service)
):
    submissions.get_submission(submission_id, viewer=current_user)
    return [ScoreOut.model_validate(s, from_attributes=True) for s in scoring.list_scores(submission_id)]
