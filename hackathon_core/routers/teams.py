from datetime import datetime
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ..dependencies import require_user, get_team_service
from ..errors import ValidationError
from ..models.user import User
from ..services.teams import TeamService

router = APIRouter(prefix="/teams", tags=["teams"])


class TeamCreate(BaseModel):
    """Schema for creating a team."""
    hackathon_id: int
    name: str


class InviteCreate(BaseModel):
    email: str


class InviteResponse(BaseModel):
    """Accept or decline the caller's invitation."""
    accept: bool
    member_id: Optional[int] = None


class MemberUpdate(BaseModel):
    """Either a leader action on the member, or the invitee's own answer."""
    action: Optional[Literal["promote", "demote", "remove"]] = None
    accept: Optional[bool] = None


class JoinRequest(BaseModel):
    code: str


class TeamOut(BaseModel):
    id: int
    hackathon_id: int
    name: str
    join_code: str
    leader_id: int
    locked: bool
    created_at: datetime


class MemberOut(BaseModel):
    id: int
    team_id: int
    user_id: int
    email: str
    role: str
    status: str
    invited_at: datetime
    responded_at: Optional[datetime] = None


class TeamDetail(BaseModel):
    team: TeamOut
    members: List[MemberOut]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_team(
    data: TeamCreate,
    current_user: User = Depends(require_user),
    teams: TeamService = Depends(get_team_service)
):
    team = teams.create_team(data.hackathon_id, current_user.id, data.name)
    return {"team": TeamOut.model_validate(team, from_attributes=True)}


@router.post("/join")
async def join_team(
    data: JoinRequest,
    current_user: User = Depends(require_user),
    teams: TeamService = Depends(get_team_service)
):
    """Join a team with its join code."""
    member = teams.join_by_code(data.code, current_user.id)
    return {"member": MemberOut.model_validate(member, from_attributes=True)}


@router.get("/{team_id}", response_model=TeamDetail)
async def get_team(
    team_id: int,
    current_user: User = Depends(require_user),
    teams: TeamService = Depends(get_team_service)
):
    team = teams.get_team(team_id)
    members = teams.list_members(team_id)
    return TeamDetail(
        team=TeamOut.model_validate(team, from_attributes=True),
        members=[MemberOut.model_validate(m, from_attributes=True) for m in members]
    )


@router.post("/{team_id}/invite")
async def invite_member(
    team_id: int,
    data: InviteCreate,
    current_user: User = Depends(require_user),
    teams: TeamService = Depends(get_team_service)
):
    member = teams.invite_member(team_id, current_user.id, data.email)
    return {"member": MemberOut.model_validate(member, from_attributes=True)}


@router.put("/{team_id}/invite")
async def respond_to_invite(
    team_id: int,
    data: InviteResponse,
    current_user: User = Depends(require_user),
    teams: TeamService = Depends(get_team_service)
):
    member = teams.respond_to_invite(team_id, current_user.id, data.accept, member_id=data.member_id)
    return {"status": member.status}


@router.put("/{team_id}/members/{member_id}")
async def update_member(
    team_id: int,
    member_id: int,
    data: MemberUpdate,
    current_user: User = Depends(require_user),
    teams: TeamService = Depends(get_team_service)
):
    """Leader actions (promote, demote, remove) or the invitee's accept/decline."""
    if data.action is not None:
        member = teams.change_member_role(team_id, current_user.id, member_id, data.action)
        if member is None:
            return {"member": None, "removed": member_id}
        return {"member": MemberOut.model_validate(member, from_attributes=True)}

    if data.accept is not None:
        member = teams.respond_to_invite(team_id, current_user.id, data.accept, member_id=member_id)
        return {"status": member.status}

    raise ValidationError("Either 'action' or 'accept' is required")
