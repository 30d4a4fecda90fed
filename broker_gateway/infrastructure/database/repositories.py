"""Data access layer for credit checks and notifications"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import false, true
from sqlalchemy.orm import Session
from broker_gateway.infrastructure.database.models import CreditCheckRecord, NotificationRecord
from broker_gateway.domain.models import (
    CreditCheckFilters,
    CreditCheckFlags,
    CreditCheckRequest,
    CreditCheckStatus,
    Notification,
    NotificationType,
    ProviderOutcome,
)
from broker_gateway.domain.events import DomainEvent


def _to_credit_check(row: CreditCheckRecord) -> CreditCheckRequest:
    return CreditCheckRequest(
        id=row.id,
        client_id=row.client_id,
        broker_id=row.broker_id,
        profile_id=row.profile_id,
        status=CreditCheckStatus(row.status),
        requested_at=row.requested_at,
        completed_at=row.completed_at,
        score=row.score,
        flags=CreditCheckFlags(
            protests=bool(row.protests),
            adverse_filings=bool(row.adverse_filings),
            insolvency_proceeding=bool(row.insolvency_proceeding),
        ),
        provider=row.provider,
        raw_response=row.raw_response,
        error_message=row.error_message,
    )


def _to_notification(row: NotificationRecord) -> Notification:
    return Notification(
        id=row.id,
        recipient_user_id=row.recipient_user_id,
        type=NotificationType(row.type),
        title=row.title,
        message=row.message,
        link=row.link,
        metadata=row.metadata_,
        read=bool(row.read),
        read_at=row.read_at,
        created_at=row.created_at,
    )


class CreditCheckRepository:
    """Repository for credit check requests"""

    def __init__(self, db: Session):
        self.db = db

    def create_pending(self, client_id: str, broker_id: str, profile_id: str, requested_at: datetime) -> CreditCheckRequest:
        """Persist a new credit check in pending status"""
        row = CreditCheckRecord(
            client_id=client_id,
            broker_id=broker_id,
            profile_id=profile_id,
            status=CreditCheckStatus.PENDING.value,
            requested_at=requested_at,
            protests=False,
            adverse_filings=False,
            insolvency_proceeding=False,
        )
        self.db.add(row)
        self.db.flush()  # Get ID without committing
        return _to_credit_check(row)

    def get(self, request_id: int) -> Optional[CreditCheckRequest]:
        row = self.db.get(CreditCheckRecord, request_id)
        return _to_credit_check(row) if row is not None else None

    def list_by_broker(self, broker_id: str, filters: CreditCheckFilters) -> List[CreditCheckRequest]:
        """Fetch a broker's credit checks, newest first"""
        query = self.db.query(CreditCheckRecord).filter(CreditCheckRecord.broker_id == broker_id)
        if filters.status is not None:
            query = query.filter(CreditCheckRecord.status == filters.status.value)
        if filters.client_id:
            query = query.filter(CreditCheckRecord.client_id == filters.client_id)
        query = query.order_by(CreditCheckRecord.requested_at.desc(), CreditCheckRecord.id.desc()).offset(filters.offset)
        if filters.limit is not None:
            query = query.limit(filters.limit)
        rows = query.all()
        return [_to_credit_check(row) for row in rows]

    def list_pending_before(self, cutoff: datetime) -> List[CreditCheckRequest]:
        rows = (
            self.db.query(CreditCheckRecord)
            .filter(
                CreditCheckRecord.status == CreditCheckStatus.PENDING.value,
                CreditCheckRecord.requested_at < cutoff,
            )
            .all()
        )
        return [_to_credit_check(row) for row in rows]

    def complete_if_pending(self, request_id: int, outcome: ProviderOutcome, completed_at: datetime) -> bool:
        """
        Compare-and-swap to a terminal state.

        Only a row still in pending status is updated; returns False when the
        row is missing or already terminal.
        """
        values = {
            "status": outcome.status.value,
            "completed_at": completed_at,
            "provider": outcome.provider,
            "raw_response": outcome.raw_response,
        }
        if outcome.status == CreditCheckStatus.COMPLETED:
            values.update(
                score=outcome.score,
                protests=outcome.flags.protests,
                adverse_filings=outcome.flags.adverse_filings,
                insolvency_proceeding=outcome.flags.insolvency_proceeding,
                error_message=None,
            )
        else:
            values.update(
                score=None,
                protests=False,
                adverse_filings=False,
                insolvency_proceeding=False,
                error_message=outcome.error_message or "Unknown provider error",
            )

        updated = (
            self.db.query(CreditCheckRecord)
            .filter(
                CreditCheckRecord.id == request_id,
                CreditCheckRecord.status == CreditCheckStatus.PENDING.value,
            )
            .update(values, synchronize_session=False)
        )
        return updated == 1

    def delete(self, request_id: int, broker_id: str) -> bool:
        deleted = (
            self.db.query(CreditCheckRecord)
            .filter(CreditCheckRecord.id == request_id, CreditCheckRecord.broker_id == broker_id)
            .delete(synchronize_session=False)
        )
        return deleted > 0


class NotificationRepository:
    """Repository for notifications"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, event: DomainEvent, created_at: datetime) -> Notification:
        row = NotificationRecord(
            recipient_user_id=event.recipient_user_id,
            type=event.type.value,
            title=event.title,
            message=event.message,
            link=event.link,
            metadata_=event.metadata,
            read=False,
            created_at=created_at,
        )
        self.db.add(row)
        self.db.flush()
        return _to_notification(row)

    def get(self, notification_id: int) -> Optional[Notification]:
        row = self.db.get(NotificationRecord, notification_id)
        return _to_notification(row) if row is not None else None

    def list_for_recipient(self, user_id: str, limit: int = 50, unread_only: bool = False) -> List[Notification]:
        """Fetch recent notifications for a recipient, newest first"""
        query = self.db.query(NotificationRecord).filter(NotificationRecord.recipient_user_id == user_id)
        if unread_only:
            query = query.filter(NotificationRecord.read == false())
        rows = (
            query.order_by(NotificationRecord.created_at.desc(), NotificationRecord.id.desc())
            .limit(limit)
            .all()
        )
        return [_to_notification(row) for row in rows]

    def count_unread(self, user_id: str) -> int:
        return (
            self.db.query(NotificationRecord)
            .filter(NotificationRecord.recipient_user_id == user_id, NotificationRecord.read == false())
            .count()
        )

    def mark_read(self, notification_id: int, read_at: datetime) -> Optional[Notification]:
        """Mark one notification read; returns None if it does not exist"""
        row = self.db.get(NotificationRecord, notification_id)
        if row is None:
            return None
        if not row.read:
            row.read = True
            row.read_at = read_at
            self.db.flush()
        return _to_notification(row)

    def mark_all_read(self, user_id: str, read_at: datetime) -> List[Notification]:
        """Mark every unread notification of a recipient read; returns the rows that changed"""
        rows = (
            self.db.query(NotificationRecord)
            .filter(NotificationRecord.recipient_user_id == user_id, NotificationRecord.read == false())
            .all()
        )
        for row in rows:
            row.read = True
            row.read_at = read_at
        self.db.flush()
        return [_to_notification(row) for row in rows]

    def delete(self, notification_id: int) -> Optional[Notification]:
        row = self.db.get(NotificationRecord, notification_id)
        if row is None:
            return None
        notification = _to_notification(row)
        self.db.delete(row)
        self.db.flush()
        return notification

    def delete_all_read(self, user_id: str) -> List[int]:
        """Delete a recipient's read notifications; returns deleted ids"""
        rows = (
            self.db.query(NotificationRecord)
            .filter(NotificationRecord.recipient_user_id == user_id, NotificationRecord.read == true())
            .all()
        )
        ids = [row.id for row in rows]
        for row in rows:
            self.db.delete(row)
        self.db.flush()
        return ids
