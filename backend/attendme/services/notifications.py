from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Iterable, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, sessionmaker

from attendme.db.errors import remote_call
from attendme.models.hidden_item import HiddenItemType
from attendme.models.notification import Notification, NotificationPriority, NotificationType
from attendme.schemas.notification import NotificationOut
from attendme.services.visibility import VisibilityCoordinator

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def deliver(self, user_id: str, payload: dict) -> int | None: ...


def _safe_iso(value: datetime | None) -> str:
    if value is None:
        return datetime.now(timezone.utc).isoformat()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.isoformat()


def notification_to_event_payload(notification: Notification, *, event: str = "notification.created") -> dict:
    return {
        "event": event,
        "notification": {
            "id": notification.id,
            "user_id": notification.user_id,
            "notification_type": notification.notification_type.value,
            "priority": notification.priority.value,
            "title": notification.title,
            "body": notification.body,
            "data": dict(notification.data or {}),
            "is_read": notification.is_read,
            "created_at": _safe_iso(notification.created_at),
        },
    }


def dispatch_notifications(
    dispatcher: NotificationDispatcher | None,
    notifications: Iterable[Notification],
    *,
    event: str = "notification.created",
) -> None:
    """Fire-and-forget delivery. A failed delivery never fails the transaction it announces."""
    if dispatcher is None:
        return
    for notification in notifications:
        payload = notification_to_event_payload(notification, event=event)
        try:
            dispatcher.deliver(notification.user_id, payload)
        except Exception:
            logger.debug("Unable to dispatch notification for user %s", notification.user_id, exc_info=True)


def create_notification(
    db: Session,
    *,
    user_id: str,
    notification_type: NotificationType,
    title: str,
    body: str,
    data: dict | None = None,
    priority: NotificationPriority = NotificationPriority.normal,
) -> Notification:
    record = Notification(
        user_id=user_id,
        notification_type=notification_type,
        priority=priority,
        title=title,
        body=body,
        data=data or {},
        is_read=False,
    )
    db.add(record)
    db.flush()
    db.refresh(record)
    return record


class NotificationService:
    def __init__(
        self,
        session_factory: sessionmaker,
        visibility: VisibilityCoordinator,
    ) -> None:
        self._session_factory = session_factory
        self._visibility = visibility

    def list_for_user(self, user_id: str, *, unread_only: bool = False, limit: int = 100) -> list[NotificationOut]:
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(limit)
        with remote_call("list notifications"), self._session_factory() as db:
            rows = list(db.execute(query).scalars())
            return [NotificationOut.model_validate(item) for item in rows]

    def mark_read(self, user_id: str, notification_id: str) -> bool:
        with remote_call("mark notification read"), self._session_factory() as db, db.begin():
            result = db.execute(
                update(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.user_id == user_id,
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=datetime.now(timezone.utc))
            )
            return result.rowcount > 0

    def mark_all_read(self, user_id: str) -> int:
        with remote_call("mark all notifications read"), self._session_factory() as db, db.begin():
            result = db.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True, read_at=datetime.now(timezone.utc))
            )
            return result.rowcount

    def delete(self, user_id: str, notification_ids: str | Iterable[str]) -> int:
        """Hard delete. Notifications are wholly owned, so nobody else can see them."""
        ids = [notification_ids] if isinstance(notification_ids, str) else list(notification_ids)
        if not ids:
            return 0
        with remote_call("delete notifications"), self._session_factory() as db, db.begin():
            result = db.execute(
                delete(Notification).where(Notification.id.in_(ids), Notification.user_id == user_id)
            )
            return result.rowcount

    def dismiss(self, user_id: str, item_id: str, item_type: HiddenItemType) -> None:
        if item_type == HiddenItemType.notification:
            self.delete(user_id, item_id)
            return
        self._visibility.hide(user_id, item_id, item_type)
