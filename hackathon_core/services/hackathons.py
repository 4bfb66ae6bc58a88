from typing import Optional
from sqlmodel import Session

from ..errors import NotFound
from ..models.hackathon import Hackathon
from ..models.user import User


def get_hackathon(db: Session, hackathon_id: int) -> Hackathon:
    """Get a hackathon or raise NotFound."""
    hackathon = db.get(Hackathon, hackathon_id)
    if hackathon is None:
        raise NotFound("Hackathon", hackathon_id)
    return hackathon


def is_hackathon_manager(user: Optional[User], hackathon: Hackathon) -> bool:
    """Admins manage every hackathon, organizers only the ones they own."""
    if user is None:
        return False
    if user.role == "admin":
        return True
    return user.role == "organizer" and hackathon.owner_id == user.id
