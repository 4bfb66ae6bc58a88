import logging
import secrets
from datetime import timedelta
from typing import Optional

import bcrypt
from sqlmodel import Session, select

from ..clock import utcnow
from ..config import SESSION_EXPIRE_DAYS
from ..models.user import User
from ..models.session import UserSession
from ..ports.identity import IdentityPort

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode(), salt).decode()


def normalize_email(email: str) -> str:
    return email.strip().lower()


class SessionIdentity(IdentityPort):
    """Identity backed by the users/sessions tables and a session cookie."""

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, token: str) -> Optional[User]:
        statement = select(UserSession).where(UserSession.session_token == token)
        user_session = self.db.exec(statement).first()
        if not user_session:
            return None

        if user_session.expires_at < utcnow():
            self.db.delete(user_session)
            self.db.commit()
            return None

        return self.db.get(User, user_session.user_id)

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        statement = select(User).where(User.email == normalize_email(email))
        return self.db.exec(statement).first()

    def provision_user(self, email: str) -> User:
        """Find or create the account an invitation is addressed to.

        Provisioned accounts get an unusable random password; the invitee
        claims the account through the normal sign-up flow.
        """
        email = normalize_email(email)
        user = self.find_by_email(email)
        if user:
            return user

        user = User(
            email=email,
            display_name=email.split("@")[0],
            password_hash=hash_password(secrets.token_urlsafe(32)),
        )
        # Flushed, not committed: the account is written together with the
        # caller's transaction.
        self.db.add(user)
        self.db.flush()

        logger.info("Provisioned user %s for %s", user.id, email)
        return user

    def create_session(self, user_id: int) -> str:
        """Create a new session for a user and return the session token."""
        session_token = secrets.token_urlsafe(32)
        expires_at = utcnow() + timedelta(days=SESSION_EXPIRE_DAYS)

        user_session = UserSession(
            user_id=user_id,
            session_token=session_token,
            expires_at=expires_at
        )
        self.db.add(user_session)
        self.db.commit()

        return session_token
