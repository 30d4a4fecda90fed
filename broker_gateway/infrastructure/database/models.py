"""SQLAlchemy ORM models for credit checks and notifications"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CreditCheckRecord(Base):
    """Credit check request tracked from submission to terminal outcome"""

    __tablename__ = "credit_check_request"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Text, nullable=False, index=True)
    broker_id = Column(Text, nullable=False, index=True)
    profile_id = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    requested_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    score = Column(Integer, nullable=True)
    protests = Column(Boolean, nullable=False, default=False)
    adverse_filings = Column(Boolean, nullable=False, default=False)
    insolvency_proceeding = Column(Boolean, nullable=False, default=False)
    provider = Column(Text, nullable=True)
    raw_response = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)


class NotificationRecord(Base):
    """Notification addressed to a single recipient"""

    __tablename__ = "notification"
    __table_args__ = (Index("ix_notification_recipient_read", "recipient_user_id", "read"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_user_id = Column(Text, nullable=False, index=True)
    type = Column(String(64), nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    link = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
