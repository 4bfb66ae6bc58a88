from fastapi import APIRouter, Depends

from ..dependencies import require_user, get_registration_service
from ..models.user import User
from ..services.registrations import RegistrationService

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.get("/me")
async def my_registrations(
    current_user: User = Depends(require_user),
    registrations: RegistrationService = Depends(get_registration_service)
):
    """The caller's registrations with hackathon and team names."""
    return registrations.list_for_user(current_user.id)
