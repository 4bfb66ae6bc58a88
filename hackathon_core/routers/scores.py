from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..dependencies import require_user, get_scoring_service
from ..models.user import User
from ..services.scoring import ScoringService

router = APIRouter(prefix="/scores", tags=["scores"])


class ScoreSubmit(BaseModel):
    """Schema for a judge's rubric. Range checks happen in the service."""
    submission_id: int
    innovation: int
    technical: int
    design: int
    impact: int
    presentation: int
    feedback: Optional[str] = None


@router.post("")
async def submit_score(
    data: ScoreSubmit,
    current_user: User = Depends(require_user),
    scoring: ScoringService = Depends(get_scoring_service)
):
    rubric = data.model_dump(exclude={"submission_id", "feedback"})
    score = scoring.submit_score(data.submission_id, current_user.id, rubric, data.feedback)
    return {
        "score": {
            "id": score.id,
            "submission_id": score.submission_id,
            "judge_id": score.judge_id,
            "total": score.total,
            "feedback": score.feedback,
            **{name: rubric[name] for name in rubric}
        }
    }
