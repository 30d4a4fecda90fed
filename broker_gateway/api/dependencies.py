"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import Header, HTTPException, Request
from broker_gateway.domain.models import Identity
from broker_gateway.services.credit_checks import RequestLifecycleManager
from broker_gateway.services.notifications import NotificationService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: str = Header(default="broker"),
) -> Identity:
    """Current session identity, as asserted by the identity provider in front of the gateway"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity")
    return Identity(user_id=x_user_id.strip(), role=x_user_role)


def get_lifecycle_manager(request: Request) -> RequestLifecycleManager:
    """Provide the credit check lifecycle manager for this application"""
    return request.app.state.lifecycle_manager


def get_notification_service(request: Request) -> NotificationService:
    """Provide the notification command service for this application"""
    return request.app.state.notification_service
