from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlmodel import Session

from ..database import get_session
from ..dependencies import (
    get_clock,
    get_registration_service,
    get_scoring_service,
    get_winner_service,
    require_role,
    require_user,
)
from ..errors import Forbidden
from ..models.user import User
from ..services.hackathons import get_hackathon, is_hackathon_manager
from ..services.registrations import RegistrationService
from ..services.scoring import ScoringService
from ..services.winners import WinnerService

router = APIRouter(prefix="/hackathons", tags=["hackathons"])


class RegistrationCreate(BaseModel):
    """Schema for registering into a hackathon."""
    mode: Literal["individual", "team"] = "individual"
    team_name: Optional[str] = None
    member_emails: List[str] = Field(default_factory=list)
    profile: Dict[str, Any] = Field(default_factory=dict)
    consent: bool = False


class JudgeAssign(BaseModel):
    email: str


class WinnerEntry(BaseModel):
    submission_id: int
    rank: int
    prize: Optional[str] = None


class WinnersAnnounce(BaseModel):
    winners: List[WinnerEntry]


class HackathonOut(BaseModel):
    id: int
    title: str
    start_at: datetime
    end_at: datetime
    registration_deadline: datetime
    max_team_size: int
    allow_teams: bool
    allow_individual: bool
    participant_count: int
    status: str


@router.get("/{hackathon_id}", response_model=HackathonOut)
async def get_hackathon_detail(
    hackathon_id: int,
    db: Session = Depends(get_session),
    clock=Depends(get_clock)
):
    hackathon = get_hackathon(db, hackathon_id)
    return HackathonOut(
        id=hackathon.id,
        title=hackathon.title,
        start_at=hackathon.start_at,
        end_at=hackathon.end_at,
        registration_deadline=hackathon.registration_deadline,
        max_team_size=hackathon.max_team_size,
        allow_teams=hackathon.allow_teams,
        allow_individual=hackathon.allow_individual,
        participant_count=hackathon.participant_count,
        status=hackathon.status_at(clock())
    )


@router.post("/{hackathon_id}/register")
async def register(
    hackathon_id: int,
    data: RegistrationCreate,
    current_user: User = Depends(require_user),
    registrations: RegistrationService = Depends(get_registration_service)
):
    result = registrations.register(
        hackathon_id,
        current_user.id,
        mode=data.mode,
        team_name=data.team_name,
        member_emails=data.member_emails,
        profile=data.profile,
        consent=data.consent
    )
    return {
        "registration_id": result.registration.id,
        "team_id": result.team.id if result.team else None,
        "join_code": result.team.join_code if result.team else None,
        "status": result.registration.status,
        "invited": result.invited,
        "failed_invites": result.failed_invites
    }


@router.get("/{hackathon_id}/registrations")
async def list_registrations(
    hackathon_id: int,
    current_user: User = Depends(require_role("organizer")),
    db: Session = Depends(get_session),
    registrations: RegistrationService = Depends(get_registration_service)
):
    """All registrations of a hackathon (organizers of the hackathon and admins)."""
    hackathon = get_hackathon(db, hackathon_id)
    if not is_hackathon_manager(current_user, hackathon):
        raise Forbidden("Only organizers of this hackathon can list registrations")
    return registrations.list_for_hackathon(hackathon_id)


@router.post("/{hackathon_id}/judges", status_code=status.HTTP_201_CREATED)
async def assign_judge(
    hackathon_id: int,
    data: JudgeAssign,
    current_user: User = Depends(require_user),
    scoring: ScoringService = Depends(get_scoring_service)
):
    assignment = scoring.assign_judge(hackathon_id, current_user, data.email)
    return {
        "assignment": {
            "id": assignment.id,
            "hackathon_id": assignment.hackathon_id,
            "judge_id": assignment.judge_id,
            "assigned_at": assignment.assigned_at
        }
    }


@router.get("/{hackathon_id}/judging")
async def judge_queue(
    hackathon_id: int,
    current_user: User = Depends(require_role("judge")),
    scoring: ScoringService = Depends(get_scoring_service)
):
    """Finalized submissions with the calling judge's own scores."""
    return scoring.judge_queue(hackathon_id, current_user.id)


@router.get("/{hackathon_id}/standings")
async def standings(
    hackathon_id: int,
    winners: WinnerService = Depends(get_winner_service)
):
    return winners.standings(hackathon_id)


@router.post("/{hackathon_id}/winners", status_code=status.HTTP_201_CREATED)
async def announce_winners(
    hackathon_id: int,
    data: WinnersAnnounce,
    current_user: User = Depends(require_user),
    winners: WinnerService = Depends(get_winner_service)
):
    winners.announce(hackathon_id, current_user, [w.model_dump() for w in data.winners])
    return {"winners": winners.get_winners(hackathon_id)}


@router.get("/{hackathon_id}/winners")
async def get_winners(
    hackathon_id: int,
    winners: WinnerService = Depends(get_winner_service)
):
    return {"winners": winners.get_winners(hackathon_id)}
