import logging
from typing import Optional

from sqlmodel import Session

from ..models.notification import Notification
from ..ports.notifier import NotifierPort

logger = logging.getLogger(__name__)


class LogNotifier(NotifierPort):
    def notify(self, user_id, kind, title, message, link=None):
        logger.info("NOTIFY user=%s kind=%s | %s: %s", user_id, kind, title, message)


class DatabaseNotifier(NotifierPort):
    """Stores in-app alerts.

    Alerts are written through a session of their own so a failed insert
    can never disturb the request's transaction.
    """

    def __init__(self, bind):
        self.bind = bind

    def notify(
        self,
        user_id: int,
        kind: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> None:
        with Session(self.bind) as db:
            db.add(Notification(
                user_id=user_id,
                kind=kind,
                title=title,
                message=message,
                link=link,
            ))
            db.commit()
