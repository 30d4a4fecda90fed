"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class CreditCheckStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class AdverseRecordType(str, Enum):
    PROTEST = "protest"
    ADVERSE_FILING = "adverse_filing"
    INSOLVENCY_PROCEEDING = "insolvency_proceeding"


class CreditTier(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    VERY_POOR = "very_poor"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ApprovalRecommendation(str, Enum):
    APPROVE = "approve"
    APPROVE_WITH_CONDITIONS = "approve_with_conditions"
    REVIEW = "review"
    REJECT = "reject"


class NotificationType(str, Enum):
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_APPROVED = "document_approved"
    DOCUMENT_REJECTED = "document_rejected"
    DOCUMENT_REQUIRES_CHANGES = "document_requires_changes"
    CREDIT_CHECK_REQUESTED = "credit_check_requested"
    CREDIT_CHECK_COMPLETED = "credit_check_completed"
    CREDIT_CHECK_FAILED = "credit_check_failed"
    PROFILE_UPDATED = "profile_updated"
    PROFILE_COMPLETED = "profile_completed"
    MESSAGE_RECEIVED = "message_received"
    SYSTEM_ALERT = "system_alert"


@dataclass(frozen=True)
class CreditCheckFlags:
    """Adverse findings reported by the provider (meaningful only when completed)"""

    protests: bool = False
    adverse_filings: bool = False
    insolvency_proceeding: bool = False

    def any(self) -> bool:
        return self.protests or self.adverse_filings or self.insolvency_proceeding


@dataclass
class CreditCheckRequest:
    """One invocation of the external verification workflow for a client"""

    id: int
    client_id: str
    broker_id: str
    profile_id: str
    status: CreditCheckStatus
    requested_at: datetime
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    flags: CreditCheckFlags = field(default_factory=CreditCheckFlags)
    provider: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != CreditCheckStatus.PENDING


@dataclass
class CreditCheckFilters:
    """Read filters for listing a broker's credit checks"""

    status: Optional[CreditCheckStatus] = None
    client_id: Optional[str] = None
    limit: Optional[int] = 50
    offset: int = 0


@dataclass(frozen=True)
class AdverseRecord:
    """Single negative record found by the provider"""

    type: AdverseRecordType
    date: date
    amount: int
    description: str


@dataclass(frozen=True)
class ProviderOutcome:
    """Result of one provider resolution"""

    status: CreditCheckStatus
    provider: str
    score: Optional[int] = None
    flags: CreditCheckFlags = field(default_factory=CreditCheckFlags)
    raw_response: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    @classmethod
    def failed(cls, provider: str, error_message: str, raw_response: Optional[Dict[str, Any]] = None) -> "ProviderOutcome":
        return cls(
            status=CreditCheckStatus.FAILED,
            provider=provider,
            error_message=error_message,
            raw_response=raw_response,
        )


@dataclass(frozen=True)
class RiskClassification:
    """Derived, never persisted judgment computed from a terminal credit check"""

    tier: Optional[CreditTier]
    risk_level: RiskLevel
    approval_recommendation: ApprovalRecommendation
    conditions: Tuple[str, ...]
    max_recommended_limit: float
    risk_factors: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


@dataclass
class Notification:
    """Unit of asynchronous information addressed to exactly one recipient"""

    id: int
    recipient_user_id: str
    type: NotificationType
    title: str
    message: str
    created_at: datetime
    link: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    read: bool = False
    read_at: Optional[datetime] = None

    def as_read(self, read_at: datetime) -> "Notification":
        return replace(self, read=True, read_at=read_at)


@dataclass
class CreditCheckStats:
    """Aggregate view over a broker's credit checks"""

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


@dataclass
class Identity:
    """Current session identity supplied by the identity provider"""

    user_id: str
    role: str = "broker"
