"""Per-session notification cache kept consistent with the bus and persistence"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set, Tuple

from broker_gateway.config import settings
from broker_gateway.domain.events import (
    NotificationChange,
    NotificationDeleted,
    NotificationInserted,
    NotificationUpdated,
)
from broker_gateway.domain.models import Notification
from broker_gateway.infrastructure.bus.notification_bus import NotificationBus, Subscription
from broker_gateway.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class ClientReconciler:
    """
    Local view of one recipient's notifications.

    Holds the newest-first load window and an unread counter, and keeps
    unread_count equal to the number of unread entries in the window after
    every event or command. Persistence stays the source of truth: on connect
    (and refresh) the window is rebuilt from a catch-up read.
    """

    def __init__(
        self,
        bus: NotificationBus,
        service: NotificationService,
        on_alert: Optional[Callable[[Notification], None]] = None,
        window: Optional[int] = None,
        replay_window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.bus = bus
        self.service = service
        self.on_alert = on_alert
        self.window = settings.notification_window if window is None else window
        self.replay_window_seconds = (
            settings.replay_window_seconds if replay_window_seconds is None else replay_window_seconds
        )
        self._clock = clock
        self._lock = threading.RLock()
        self._subscription: Optional[Subscription] = None
        self._replay_until = 0.0
        self._in_flight = 0
        self._deleted_in_flight: Set[int] = set()
        self.user_id: Optional[str] = None
        self.notifications: List[Notification] = []
        self.unread_count = 0

    # Session lifecycle

    def connect(self, user_id: str) -> None:
        """Subscribe to the user's channel, then catch up from persistence"""
        with self._lock:
            if self._subscription is not None:
                self.disconnect()
            self.user_id = user_id
            self._subscription = self.bus.subscribe(
                user_id,
                on_insert=self.handle_insert,
                on_update=self.handle_update,
                on_delete=self.handle_delete,
            )
            self._replay_until = self._clock() + self.replay_window_seconds
            self.refresh()

    def switch_identity(self, user_id: str) -> None:
        """Move the session to another identity without cross-delivery"""
        self.disconnect()
        self.connect(user_id)

    def disconnect(self) -> None:
        with self._lock:
            if self._subscription is not None:
                self._subscription.unsubscribe()
                self._subscription = None
            self.user_id = None
            self.notifications = []
            self.unread_count = 0

    def refresh(self) -> None:
        """Rebuild the window from persistence"""
        with self._lock:
            if self.user_id is None:
                return
            loaded = self.service.list_notifications(self.user_id, limit=self.window)
            self.notifications = list(loaded)
            self.unread_count = sum(1 for n in self.notifications if not n.read)

    # Bus events

    def apply(self, change: NotificationChange) -> None:
        if isinstance(change, NotificationInserted):
            self.handle_insert(change.notification)
        elif isinstance(change, NotificationUpdated):
            self.handle_update(change.notification)
        elif isinstance(change, NotificationDeleted):
            self.handle_delete(change.notification_id)
        else:
            raise TypeError(f"Unknown notification change: {type(change).__name__}")

    def handle_insert(self, notification: Notification) -> None:
        with self._lock:
            if self._index_of(notification.id) is not None:
                return
            self.notifications.insert(0, notification)
            if not notification.read:
                self.unread_count += 1
            self._trim()
            alert = self.on_alert is not None and self._clock() >= self._replay_until

        if alert:
            self.on_alert(notification)

    def handle_update(self, notification: Notification) -> None:
        with self._lock:
            index = self._index_of(notification.id)
            if index is None:
                logger.debug("Update for notification outside window", extra={"notification_id": notification.id})
                return
            previous = self.notifications[index]
            self.notifications[index] = notification
            if not previous.read and notification.read:
                self.unread_count = max(0, self.unread_count - 1)
            elif previous.read and not notification.read:
                self.unread_count += 1

    def handle_delete(self, notification_id: int) -> None:
        with self._lock:
            if self._in_flight:
                self._deleted_in_flight.add(notification_id)
            self._remove(notification_id)

    # Commands: optimistic local change, then persistence; on failure only the
    # entries the command touched are restored

    def mark_read(self, notification_id: int) -> None:
        with self._lock:
            flipped = self._flip_read([notification_id])
            self._in_flight += 1
        self._commit(flipped, [], lambda: self.service.mark_as_read(notification_id, user_id=self.user_id))

    def mark_all_read(self) -> None:
        with self._lock:
            flipped = self._flip_read([n.id for n in self.notifications])
            self._in_flight += 1
        self._commit(flipped, [], lambda: self.service.mark_all_as_read(self._require_user()))

    def delete(self, notification_id: int) -> None:
        with self._lock:
            removed = self._remove(notification_id)
            self._in_flight += 1
        self._commit(
            [],
            [removed] if removed is not None else [],
            lambda: self.service.delete_notification(notification_id, user_id=self.user_id),
        )

    def delete_all_read(self) -> None:
        with self._lock:
            read_ids = [n.id for n in self.notifications if n.read]
            removed = [self._remove(notification_id) for notification_id in read_ids]
            self._in_flight += 1
        self._commit([], removed, lambda: self.service.delete_all_read(self._require_user()))

    # Helpers

    def _commit(
        self,
        flipped: List[Tuple[Notification, Notification]],
        removed: List[Notification],
        command: Callable[[], object],
    ) -> None:
        try:
            command()
        except Exception:
            with self._lock:
                self._undo(flipped, removed)
            logger.warning("Notification command failed; local change reverted", exc_info=True)
            raise
        finally:
            with self._lock:
                self._in_flight -= 1
                if not self._in_flight:
                    self._deleted_in_flight.clear()

    def _undo(self, flipped: List[Tuple[Notification, Notification]], removed: List[Notification]) -> None:
        # Entries changed by bus events since the command started are left alone
        for original, optimistic in flipped:
            index = self._index_of(original.id)
            if index is not None and self.notifications[index] is optimistic:
                self.notifications[index] = original
        for entry in removed:
            if entry.id in self._deleted_in_flight or self._index_of(entry.id) is not None:
                continue
            self.notifications.insert(self._position_for(entry), entry)
        self._trim()
        self.unread_count = sum(1 for n in self.notifications if not n.read)

    def _flip_read(self, notification_ids: List[int]) -> List[Tuple[Notification, Notification]]:
        """Mark entries read locally; returns (previous, optimistic) pairs"""
        read_at = datetime.now(timezone.utc)
        flipped = []
        for notification_id in notification_ids:
            index = self._index_of(notification_id)
            if index is None or self.notifications[index].read:
                continue
            original = self.notifications[index]
            optimistic = original.as_read(read_at)
            self.notifications[index] = optimistic
            self.unread_count = max(0, self.unread_count - 1)
            flipped.append((original, optimistic))
        return flipped

    def _remove(self, notification_id: int) -> Optional[Notification]:
        index = self._index_of(notification_id)
        if index is None:
            return None
        removed = self.notifications.pop(index)
        if not removed.read:
            self.unread_count = max(0, self.unread_count - 1)
        return removed

    def _position_for(self, notification: Notification) -> int:
        # Window is newest first; ids grow with insertion order
        for index, current in enumerate(self.notifications):
            if current.id < notification.id:
                return index
        return len(self.notifications)

    def _require_user(self) -> str:
        if self.user_id is None:
            raise RuntimeError("Reconciler is not connected")
        return self.user_id

    def _index_of(self, notification_id: int) -> Optional[int]:
        for index, notification in enumerate(self.notifications):
            if notification.id == notification_id:
                return index
        return None

    def _trim(self) -> None:
        while len(self.notifications) > self.window:
            dropped = self.notifications.pop()
            if not dropped.read:
                self.unread_count = max(0, self.unread_count - 1)
