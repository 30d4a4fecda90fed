"""Credit check lifecycle: submission, asynchronous provider resolution and reads"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set, Tuple

from sqlalchemy.orm import sessionmaker

from broker_gateway.config import settings
from broker_gateway.domain import events
from broker_gateway.domain.exceptions import ConflictError, NotFoundError, ProviderError, ValidationError
from broker_gateway.domain.models import (
    CreditCheckFilters,
    CreditCheckRequest,
    CreditCheckStats,
    CreditCheckStatus,
    ProviderOutcome,
    RiskClassification,
)
from broker_gateway.domain.risk_analysis import analyze_credit_check, credit_check_stats
from broker_gateway.infrastructure.clients.provider import CreditProvider
from broker_gateway.infrastructure.database.repositories import CreditCheckRepository
from broker_gateway.infrastructure.observability.logging import log_transition
from broker_gateway.infrastructure.observability.metrics import (
    credit_check_submitted_counter,
    record_resolution,
    risk_classification_counter,
)
from broker_gateway.services.notifications import NotificationPublisher

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RequestLifecycleManager:
    """
    Owns credit check state transitions.

    State machine: pending -> completed | failed, both terminal. Terminal
    transitions are compare-and-swap on a single row, so duplicate or late
    provider results are logged no-ops.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        provider: CreditProvider,
        publisher: NotificationPublisher,
    ):
        self.session_factory = session_factory
        self.provider = provider
        self.publisher = publisher
        self._tasks: Set[asyncio.Task] = set()

    async def submit(self, client_id: str, broker_id: str, profile_id: str) -> CreditCheckRequest:
        """
        Create a pending credit check and schedule its resolution.

        Returns as soon as the pending row is committed; resolution runs on its
        own task and is reported through notifications.

        Raises:
            ValidationError: if any id is missing or blank
        """
        for name, value in (("client_id", client_id), ("broker_id", broker_id), ("profile_id", profile_id)):
            if value is None or not str(value).strip():
                raise ValidationError(f"{name} is required")

        with self.session_factory.begin() as db:
            request = CreditCheckRepository(db).create_pending(
                client_id=client_id,
                broker_id=broker_id,
                profile_id=str(profile_id),
                requested_at=_utcnow(),
            )

        credit_check_submitted_counter.inc()
        logger.info(
            "Credit check submitted",
            extra={"credit_check_id": request.id, "broker_id": broker_id, "client_id": client_id},
        )

        task = asyncio.get_running_loop().create_task(self._resolve(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self.publisher.publish(events.credit_check_requested(request))
        return request

    async def _resolve(self, request: CreditCheckRequest) -> None:
        start = time.monotonic()
        try:
            outcome = await self.provider.resolve(request.id)
        except ProviderError as e:
            outcome = ProviderOutcome.failed(provider=self.provider.name, error_message=str(e))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Unexpected provider error", extra={"credit_check_id": request.id})
            outcome = ProviderOutcome.failed(provider=self.provider.name, error_message=f"Unexpected provider error: {e}")

        self.on_provider_result(request.id, outcome, started_at=start)

    def on_provider_result(
        self,
        request_id: int,
        outcome: ProviderOutcome,
        started_at: Optional[float] = None,
    ) -> Optional[CreditCheckRequest]:
        """
        Apply a provider outcome if the credit check is still pending.

        Returns the terminal credit check, or None when nothing changed
        (provider still processing, unknown id, or already terminal).
        """
        if outcome.status == CreditCheckStatus.PENDING:
            record_resolution("pending")
            logger.info("Provider still processing", extra={"credit_check_id": request_id})
            return None

        # A completed check always carries a score
        if outcome.status == CreditCheckStatus.COMPLETED and outcome.score is None:
            logger.warning("Completed provider result without a score", extra={"credit_check_id": request_id})
            outcome = ProviderOutcome.failed(
                provider=outcome.provider,
                error_message="Provider returned no score",
                raw_response=outcome.raw_response,
            )

        with self.session_factory.begin() as db:
            repo = CreditCheckRepository(db)
            applied = repo.complete_if_pending(request_id, outcome, completed_at=_utcnow())
            current = repo.get(request_id)

        if current is None:
            record_resolution("ignored")
            logger.warning("Provider result for unknown credit check", extra={"credit_check_id": request_id})
            return None

        duration_ms = (time.monotonic() - started_at) * 1000 if started_at is not None else 0.0

        if not applied:
            conflict = ConflictError(request_id, current.status.value)
            record_resolution("ignored")
            logger.info(f"Ignoring provider result: {conflict}", extra={"credit_check_id": request_id})
            log_transition(request_id, current.broker_id, outcome.status.value, False, duration_ms)
            return None

        record_resolution(current.status.value, duration_ms / 1000 if started_at is not None else None)
        log_transition(request_id, current.broker_id, current.status.value, True, duration_ms)

        if current.status == CreditCheckStatus.COMPLETED:
            self.publisher.publish(events.credit_check_completed(current))
        else:
            self.publisher.publish(events.credit_check_failed(current))
        return current

    def get(self, request_id: int) -> CreditCheckRequest:
        with self.session_factory() as db:
            request = CreditCheckRepository(db).get(request_id)
        if request is None:
            raise NotFoundError(f"Credit check {request_id} not found")
        return request

    def list(self, broker_id: str, filters: Optional[CreditCheckFilters] = None) -> List[CreditCheckRequest]:
        if not broker_id:
            raise ValidationError("broker_id is required")
        filters = filters or CreditCheckFilters()
        if filters.limit is not None and filters.limit <= 0:
            raise ValidationError("limit must be positive")
        if filters.offset < 0:
            raise ValidationError("offset must not be negative")
        with self.session_factory() as db:
            return CreditCheckRepository(db).list_by_broker(broker_id, filters)

    def analyze(
        self, request_id: int, nominal_limit: Optional[float] = None
    ) -> Tuple[CreditCheckRequest, Optional[RiskClassification]]:
        """Fetch a credit check with its risk classification (None while pending)"""
        request = self.get(request_id)
        if not request.is_terminal:
            return request, None
        limit = settings.default_nominal_limit if nominal_limit is None else nominal_limit
        classification = analyze_credit_check(request, limit)
        risk_classification_counter.labels(risk_level=classification.risk_level.value).inc()
        return request, classification

    def stats(self, broker_id: str, nominal_limit: Optional[float] = None) -> CreditCheckStats:
        requests = self.list(broker_id, CreditCheckFilters(limit=None))
        limit = settings.default_nominal_limit if nominal_limit is None else nominal_limit
        return credit_check_stats(requests, limit)

    def delete(self, request_id: int, broker_id: str) -> None:
        """Operator delete, scoped to the owning broker"""
        with self.session_factory.begin() as db:
            deleted = CreditCheckRepository(db).delete(request_id, broker_id)
        if not deleted:
            raise NotFoundError(f"Credit check {request_id} not found")
        logger.info("Credit check deleted", extra={"credit_check_id": request_id, "broker_id": broker_id})

    def expire_stale_pending(
        self, max_age: Optional[timedelta] = None, now: Optional[datetime] = None
    ) -> List[CreditCheckRequest]:
        """
        Fail credit checks that have been pending longer than max_age.

        Uses the same compare-and-swap as provider results, so a late provider
        answer and the sweep cannot both win. Without max_age and without
        pending_timeout_seconds configured, nothing expires.
        """
        if max_age is None:
            if settings.pending_timeout_seconds is None:
                return []
            max_age = timedelta(seconds=settings.pending_timeout_seconds)

        cutoff = (now or _utcnow()) - max_age
        with self.session_factory() as db:
            stale = CreditCheckRepository(db).list_pending_before(cutoff)

        expired = []
        for request in stale:
            outcome = ProviderOutcome.failed(provider=self.provider.name, error_message="Provider timeout")
            result = self.on_provider_result(request.id, outcome)
            if result is not None:
                expired.append(result)
        return expired

    async def run_expiry_sweep(self, interval_seconds: float) -> None:
        """Fail stale pending checks every interval until cancelled"""
        logger.info("Pending expiry sweep started", extra={"interval_seconds": interval_seconds})
        while True:
            try:
                expired = self.expire_stale_pending()
            except Exception:
                logger.exception("Pending expiry sweep failed")
            else:
                if expired:
                    logger.info("Expired stale credit checks", extra={"count": len(expired)})
            await asyncio.sleep(interval_seconds)

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled resolution has finished"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding resolutions; their rows stay pending"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
