"""In-process notification bus: live push of notification changes keyed by recipient"""

import itertools
import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List

from broker_gateway.domain.events import (
    NotificationChange,
    NotificationDeleted,
    NotificationInserted,
    NotificationUpdated,
)
from broker_gateway.domain.exceptions import TransportError, ValidationError
from broker_gateway.domain.models import Notification
from broker_gateway.infrastructure.observability.metrics import bus_delivery_failures_counter, bus_subscribers_gauge

logger = logging.getLogger(__name__)

_subscription_ids = itertools.count(1)


def _recipient_of(change: NotificationChange) -> str:
    if isinstance(change, (NotificationInserted, NotificationUpdated)):
        return change.notification.recipient_user_id
    if isinstance(change, NotificationDeleted):
        return change.recipient_user_id
    raise TypeError(f"Unknown notification change: {type(change).__name__}")


class Subscription:
    """Handle for one session's channel; unsubscribe is idempotent"""

    def __init__(
        self,
        bus: "NotificationBus",
        recipient_user_id: str,
        on_insert: Callable[[Notification], None],
        on_update: Callable[[Notification], None],
        on_delete: Callable[[int], None],
    ):
        self.id = next(_subscription_ids)
        self.recipient_user_id = recipient_user_id
        self._bus = bus
        self._on_insert = on_insert
        self._on_update = on_update
        self._on_delete = on_delete
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._remove(self)

    def deliver(self, change: NotificationChange) -> None:
        if self._closed:
            return
        if isinstance(change, NotificationInserted):
            self._on_insert(change.notification)
        elif isinstance(change, NotificationUpdated):
            self._on_update(change.notification)
        elif isinstance(change, NotificationDeleted):
            self._on_delete(change.notification_id)
        else:
            raise TypeError(f"Unknown notification change: {type(change).__name__}")


class NotificationBus:
    """
    Pub/sub transport for notification changes.

    Each recipient has a set of subscriptions. Publish dispatches synchronously
    to the subscriptions current at call time, so per-id order follows publish
    order. There is no replay log: a subscriber that connects late recovers
    history from persistence.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.RLock()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return sum(len(subs) for subs in self._subscribers.values())

    def subscribe(
        self,
        recipient_user_id: str,
        on_insert: Callable[[Notification], None],
        on_update: Callable[[Notification], None],
        on_delete: Callable[[int], None],
    ) -> Subscription:
        if not recipient_user_id:
            raise ValidationError("recipient_user_id is required to subscribe")

        with self._lock:
            if self._closed:
                raise TransportError("Notification bus is closed")
            subscription = Subscription(self, recipient_user_id, on_insert, on_update, on_delete)
            self._subscribers[recipient_user_id].append(subscription)
            total = len(self._subscribers[recipient_user_id])
            bus_subscribers_gauge.inc()

        logger.info(
            "Bus subscriber added",
            extra={
                "recipient_user_id": recipient_user_id,
                "subscription_id": subscription.id,
                "total": total,
            },
        )
        return subscription

    def publish(self, recipient_user_id: str, change: NotificationChange) -> int:
        """
        Push a change to every subscriber of the recipient.

        Returns the number of subscribers that received it.

        Raises:
            TransportError: bus closed, or at least one subscriber failed
                (the others are still served)
        """
        if _recipient_of(change) != recipient_user_id:
            raise ValidationError("Change is not addressed to this recipient")

        with self._lock:
            if self._closed:
                raise TransportError("Notification bus is closed")

            subscriptions = list(self._subscribers.get(recipient_user_id, ()))
            delivered = 0
            failures = 0
            for subscription in subscriptions:
                try:
                    subscription.deliver(change)
                    delivered += 1
                except Exception:
                    failures += 1
                    bus_delivery_failures_counter.inc()
                    logger.exception(
                        "Bus delivery failed",
                        extra={
                            "recipient_user_id": recipient_user_id,
                            "subscription_id": subscription.id,
                            "kind": change.kind,
                        },
                    )

        logger.debug(
            "Bus publish",
            extra={"recipient_user_id": recipient_user_id, "kind": change.kind, "recipients": delivered},
        )

        if failures:
            raise TransportError(f"{failures} of {len(subscriptions)} subscribers failed for {recipient_user_id}")
        return delivered

    def close(self) -> None:
        """Drop every subscriber; further publishes raise TransportError"""
        with self._lock:
            self._closed = True
            for subscriptions in self._subscribers.values():
                for subscription in subscriptions:
                    subscription._closed = True
                    bus_subscribers_gauge.dec()
            self._subscribers.clear()

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscriptions = self._subscribers.get(subscription.recipient_user_id)
            if not subscriptions or subscription not in subscriptions:
                return
            subscriptions.remove(subscription)
            bus_subscribers_gauge.dec()
            if not subscriptions:
                del self._subscribers[subscription.recipient_user_id]

        logger.info(
            "Bus subscriber removed",
            extra={"recipient_user_id": subscription.recipient_user_id, "subscription_id": subscription.id},
        )
