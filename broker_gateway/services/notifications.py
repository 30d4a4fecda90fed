"""Notification publishing and the recipient-facing notification commands"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from broker_gateway.config import settings
from broker_gateway.domain.events import (
    DomainEvent,
    NotificationChange,
    NotificationDeleted,
    NotificationInserted,
    NotificationUpdated,
)
from broker_gateway.domain.exceptions import NotFoundError, TransportError, ValidationError
from broker_gateway.domain.models import Notification
from broker_gateway.infrastructure.bus.notification_bus import NotificationBus
from broker_gateway.infrastructure.database.repositories import NotificationRepository
from broker_gateway.infrastructure.observability.logging import log_publish
from broker_gateway.infrastructure.observability.metrics import notification_published_counter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_user(user_id: str) -> None:
    if not user_id or not user_id.strip():
        raise ValidationError("user_id is required")


class NotificationPublisher:
    """Persists notifications, then pushes them on the recipient's channel"""

    def __init__(self, session_factory: sessionmaker, bus: NotificationBus):
        self.session_factory = session_factory
        self.bus = bus

    def publish(self, event: DomainEvent) -> Notification:
        """
        Persist a notification for the event's recipient and push it live.

        The row is committed before the push, so a recipient that reads history
        right after the push already finds it. A failed push does not roll the
        row back; the recipient recovers it on the next catch-up read.
        """
        _require_user(event.recipient_user_id)

        with self.session_factory.begin() as db:
            notification = NotificationRepository(db).create(event, created_at=_utcnow())

        pushed = self.push_change(NotificationInserted(notification))
        notification_published_counter.labels(type=event.type.value).inc()
        log_publish(notification.id, notification.recipient_user_id, event.type.value, pushed)
        return notification

    def push_change(self, change: NotificationChange) -> bool:
        """Push an already-persisted change; transport failures are logged, not raised"""
        if isinstance(change, NotificationDeleted):
            recipient = change.recipient_user_id
        else:
            recipient = change.notification.recipient_user_id

        try:
            self.bus.publish(recipient, change)
            return True
        except TransportError as e:
            logger.warning(
                f"Live push failed: {e}",
                extra={"recipient_user_id": recipient, "kind": change.kind, "notification_id": change.notification_id},
            )
            return False


class NotificationService:
    """Recipient commands over persisted notifications; every mutation is pushed to the bus"""

    def __init__(self, session_factory: sessionmaker, publisher: NotificationPublisher):
        self.session_factory = session_factory
        self.publisher = publisher

    def list_notifications(self, user_id: str, limit: Optional[int] = None) -> List[Notification]:
        _require_user(user_id)
        limit = settings.notification_window if limit is None else limit
        if limit <= 0:
            raise ValidationError("limit must be positive")
        with self.session_factory() as db:
            return NotificationRepository(db).list_for_recipient(user_id, limit=limit)

    def list_unread(self, user_id: str, limit: Optional[int] = None) -> List[Notification]:
        _require_user(user_id)
        with self.session_factory() as db:
            return NotificationRepository(db).list_for_recipient(
                user_id, limit=limit or settings.notification_window, unread_only=True
            )

    def get_unread_count(self, user_id: str) -> int:
        _require_user(user_id)
        with self.session_factory() as db:
            return NotificationRepository(db).count_unread(user_id)

    def mark_as_read(self, notification_id: int, user_id: Optional[str] = None) -> Notification:
        with self.session_factory.begin() as db:
            repo = NotificationRepository(db)
            current = repo.get(notification_id)
            if current is None or (user_id is not None and current.recipient_user_id != user_id):
                raise NotFoundError(f"Notification {notification_id} not found")
            if current.read:
                return current
            notification = repo.mark_read(notification_id, read_at=_utcnow())

        self.publisher.push_change(NotificationUpdated(notification))
        return notification

    def mark_all_as_read(self, user_id: str) -> int:
        _require_user(user_id)
        with self.session_factory.begin() as db:
            changed = NotificationRepository(db).mark_all_read(user_id, read_at=_utcnow())

        for notification in changed:
            self.publisher.push_change(NotificationUpdated(notification))
        return len(changed)

    def delete_notification(self, notification_id: int, user_id: Optional[str] = None) -> None:
        with self.session_factory.begin() as db:
            repo = NotificationRepository(db)
            current = repo.get(notification_id)
            if current is None or (user_id is not None and current.recipient_user_id != user_id):
                raise NotFoundError(f"Notification {notification_id} not found")
            repo.delete(notification_id)

        self.publisher.push_change(NotificationDeleted(notification_id, current.recipient_user_id))

    def delete_all_read(self, user_id: str) -> int:
        _require_user(user_id)
        with self.session_factory.begin() as db:
            deleted_ids = NotificationRepository(db).delete_all_read(user_id)

        for notification_id in deleted_ids:
            self.publisher.push_change(NotificationDeleted(notification_id, user_id))
        return len(deleted_ids)
