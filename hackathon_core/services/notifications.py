import logging
from typing import List, Optional

from sqlmodel import Session, select

from ..errors import NotFound
from ..models.notification import Notification
from ..ports.events import EventPublisher
from ..ports.notifier import NotifierPort

logger = logging.getLogger(__name__)


class Broadcaster:
    """Side effects that follow a committed transition.

    Both channels are best-effort: a failing notifier or publisher is
    logged and never propagates to the operation that triggered it.
    """

    def __init__(self, notifier: Optional[NotifierPort] = None, events: Optional[EventPublisher] = None):
        self.notifier = notifier
        self.events = events

    def notify(self, user_id: int, kind: str, title: str, message: str, link: Optional[str] = None) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify(user_id, kind, title, message, link)
        except Exception:
            logger.exception("Failed to notify user %s (%s)", user_id, kind)

    def publish(self, topic: str, payload: dict) -> None:
        if self.events is None:
            return
        try:
            self.events.publish(topic, payload)
        except Exception:
            logger.exception("Failed to publish %s", topic)


def list_notifications(db: Session, user_id: int, unread_only: bool = False) -> List[Notification]:
    statement = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        statement = statement.where(Notification.read == False)  # noqa: E712
    statement = statement.order_by(Notification.created_at.desc(), Notification.id.desc())
    return db.exec(statement).all()


def mark_read(db: Session, user_id: int, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFound("Notification", notification_id)
    notification.read = True
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification
