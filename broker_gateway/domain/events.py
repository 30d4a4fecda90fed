"""Domain-change events and the notification change variants carried by the bus"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from broker_gateway.domain.models import CreditCheckRequest, Notification, NotificationType


@dataclass(frozen=True)
class DomainEvent:
    """Something happened that one recipient should hear about"""

    type: NotificationType
    recipient_user_id: str
    title: str
    message: str
    link: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class NotificationInserted:
    notification: Notification
    kind: str = "insert"

    @property
    def notification_id(self) -> int:
        return self.notification.id


@dataclass(frozen=True)
class NotificationUpdated:
    notification: Notification
    kind: str = "update"

    @property
    def notification_id(self) -> int:
        return self.notification.id


@dataclass(frozen=True)
class NotificationDeleted:
    notification_id: int
    recipient_user_id: str
    kind: str = "delete"


NotificationChange = Union[NotificationInserted, NotificationUpdated, NotificationDeleted]


def credit_check_requested(request: CreditCheckRequest) -> DomainEvent:
    return DomainEvent(
        type=NotificationType.CREDIT_CHECK_REQUESTED,
        recipient_user_id=request.client_id,
        title="Credit check requested",
        message="Your broker has requested a credit check on your profile",
        link=f"/client/credit-checks/{request.id}",
        metadata={"credit_check_id": request.id, "profile_id": request.profile_id},
    )


def credit_check_completed(request: CreditCheckRequest) -> DomainEvent:
    return DomainEvent(
        type=NotificationType.CREDIT_CHECK_COMPLETED,
        recipient_user_id=request.broker_id,
        title="Credit check completed",
        message=f"Credit check for client {request.client_id} completed: {request.score}/1000",
        link=f"/broker/credit-checks/{request.id}",
        metadata={
            "credit_check_id": request.id,
            "client_id": request.client_id,
            "profile_id": request.profile_id,
            "score": request.score,
        },
    )


def credit_check_failed(request: CreditCheckRequest) -> DomainEvent:
    return DomainEvent(
        type=NotificationType.CREDIT_CHECK_FAILED,
        recipient_user_id=request.broker_id,
        title="Credit check failed",
        message=f"Credit check for client {request.client_id} failed: {request.error_message}",
        link=f"/broker/credit-checks/{request.id}",
        metadata={"credit_check_id": request.id, "client_id": request.client_id},
    )
