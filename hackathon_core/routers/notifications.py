from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..database import get_session
from ..dependencies import require_user
from ..models.user import User
from ..services.notifications import list_notifications, mark_read

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def my_notifications(
    unread: bool = False,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_session)
):
    return list_notifications(db, current_user.id, unread_only=unread)


@router.post("/{notification_id}/read")
async def read_notification(
    notification_id: int,
    current_user: User = Depends(require_user),
    db: Session = Depends(get_session)
):
    return mark_read(db, current_user.id, notification_id)
