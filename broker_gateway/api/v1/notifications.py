"""/v1/notifications - the recipient's notification history and commands"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from broker_gateway.api.v1.schemas import (
    BulkUpdateResponse,
    NotificationListResponse,
    NotificationSchema,
    UnreadCountResponse,
)
from broker_gateway.api.dependencies import get_identity, get_notification_service
from broker_gateway.domain.exceptions import NotFoundError
from broker_gateway.domain.models import Identity
from broker_gateway.services.notifications import NotificationService

router = APIRouter()


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    limit: int = Query(50, gt=0, le=200),
    unread_only: bool = Query(False, description="Only notifications not yet read"),
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    """Catch-up read: most recent notifications for the caller, newest first"""
    if unread_only:
        notifications = service.list_unread(identity.user_id, limit=limit)
    else:
        notifications = service.list_notifications(identity.user_id, limit=limit)
    return NotificationListResponse(
        user_id=identity.user_id,
        notifications=[NotificationSchema.from_domain(n) for n in notifications],
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    return UnreadCountResponse(user_id=identity.user_id, unread_count=service.get_unread_count(identity.user_id))


@router.post("/notifications/read-all", response_model=BulkUpdateResponse)
def mark_all_as_read(
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    return BulkUpdateResponse(user_id=identity.user_id, affected=service.mark_all_as_read(identity.user_id))


@router.post("/notifications/{notification_id}/read", response_model=NotificationSchema)
def mark_as_read(
    notification_id: int,
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    try:
        notification = service.mark_as_read(notification_id, user_id=identity.user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationSchema.from_domain(notification)


@router.delete("/notifications/read", response_model=BulkUpdateResponse)
def delete_all_read(
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    return BulkUpdateResponse(user_id=identity.user_id, affected=service.delete_all_read(identity.user_id))


@router.delete("/notifications/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    identity: Identity = Depends(get_identity),
    service: NotificationService = Depends(get_notification_service),
):
    try:
        service.delete_notification(notification_id, user_id=identity.user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")
    return Response(status_code=204)
