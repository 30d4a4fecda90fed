"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from broker_gateway.domain.models import (
    CreditCheckRequest,
    CreditCheckStats,
    Notification,
    RiskClassification,
)


class CreditCheckSubmitRequest(BaseModel):
    """Request body for POST /v1/credit-checks"""

    client_id: str = Field(..., min_length=1, description="Client the check is run on")
    profile_id: str = Field(..., min_length=1, description="Credit profile the check belongs to")


class CreditCheckFlagsSchema(BaseModel):
    protests: bool
    adverse_filings: bool
    insolvency_proceeding: bool


class CreditCheckResponse(BaseModel):
    """Single credit check"""

    id: int
    client_id: str
    broker_id: str
    profile_id: str
    status: str
    requested_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    flags: CreditCheckFlagsSchema
    provider: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_domain(cls, request: CreditCheckRequest) -> "CreditCheckResponse":
        return cls(
            id=request.id,
            client_id=request.client_id,
            broker_id=request.broker_id,
            profile_id=request.profile_id,
            status=request.status.value,
            requested_at=request.requested_at,
            completed_at=request.completed_at,
            score=request.score,
            flags=CreditCheckFlagsSchema(
                protests=request.flags.protests,
                adverse_filings=request.flags.adverse_filings,
                insolvency_proceeding=request.flags.insolvency_proceeding,
            ),
            provider=request.provider,
            error_message=request.error_message,
        )


class RiskClassificationSchema(BaseModel):
    """Risk analysis of a terminal credit check"""

    tier: Optional[str] = None
    risk_level: str
    approval_recommendation: str
    conditions: List[str]
    max_recommended_limit: float
    risk_factors: List[str]
    recommendations: List[str]

    @classmethod
    def from_domain(cls, classification: RiskClassification) -> "RiskClassificationSchema":
        return cls(
            tier=classification.tier.value if classification.tier is not None else None,
            risk_level=classification.risk_level.value,
            approval_recommendation=classification.approval_recommendation.value,
            conditions=list(classification.conditions),
            max_recommended_limit=classification.max_recommended_limit,
            risk_factors=list(classification.risk_factors),
            recommendations=list(classification.recommendations),
        )


class CreditCheckDetailResponse(BaseModel):
    """Response for GET /v1/credit-checks/{id}"""

    credit_check: CreditCheckResponse
    analysis: Optional[RiskClassificationSchema] = None
    summary: str


class CreditCheckListResponse(BaseModel):
    """Response for GET /v1/credit-checks"""

    broker_id: str
    credit_checks: List[CreditCheckResponse]


class CreditCheckStatsResponse(BaseModel):
    """Response for GET /v1/credit-checks/stats"""

    total: int
    completed: int
    pending: int
    failed: int
    avg_score: int
    with_protests: int
    with_adverse_filings: int
    with_insolvency_proceedings: int
    completion_rate: int
    risk_levels: Dict[str, int]
    approval_recommendations: Dict[str, int]

    @classmethod
    def from_domain(cls, stats: CreditCheckStats) -> "CreditCheckStatsResponse":
        return cls(**stats.__dict__)


class NotificationSchema(BaseModel):
    """Single notification"""

    id: int
    recipient_user_id: str
    type: str
    title: str
    message: str
    link: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationSchema":
        return cls(
            id=notification.id,
            recipient_user_id=notification.recipient_user_id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            link=notification.link,
            metadata=notification.metadata,
            read=notification.read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    """Response for GET /v1/notifications"""

    user_id: str
    notifications: List[NotificationSchema]


class UnreadCountResponse(BaseModel):
    """Response for GET /v1/notifications/unread-count"""

    user_id: str
    unread_count: int


class BulkUpdateResponse(BaseModel):
    """Response for bulk notification commands"""

    user_id: str
    affected: int
