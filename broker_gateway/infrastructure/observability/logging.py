"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from broker_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_transition(request_id: int, broker_id: str, status: str, applied: bool, duration_ms: float) -> None:
    """Log a provider resolution and whether it changed the credit check"""
    logging.getLogger("broker_gateway.credit_checks").info(
        "Credit check resolved" if applied else "Credit check resolution ignored",
        extra={
            "credit_check_id": request_id,
            "broker_id": broker_id,
            "step": "provider_result",
            "outcome": status,
            "applied": applied,
            "duration_ms": duration_ms,
        },
    )


def log_publish(notification_id: int, recipient_user_id: str, notification_type: str, delivered: bool) -> None:
    """Log a notification publish and whether the live push succeeded"""
    logging.getLogger("broker_gateway.notifications").info(
        "Notification published",
        extra={
            "notification_id": notification_id,
            "recipient_user_id": recipient_user_id,
            "notification_type": notification_type,
            "pushed": delivered,
        },
    )
