"""Credit check provider: the contract plus a simulated implementation"""

import asyncio
import random
from datetime import date, timedelta
from typing import List, Protocol

from broker_gateway.config import settings
from broker_gateway.domain.models import (
    AdverseRecord,
    AdverseRecordType,
    CreditCheckFlags,
    CreditCheckStatus,
    ProviderOutcome,
)

_RECORD_DESCRIPTIONS = {
    AdverseRecordType.PROTEST: "Protested cheque",
    AdverseRecordType.ADVERSE_FILING: "Adverse filing reported",
    AdverseRecordType.INSOLVENCY_PROCEEDING: "Insolvency proceeding in progress",
}


class CreditProvider(Protocol):
    """Anything that can resolve a submitted credit check"""

    name: str

    async def resolve(self, request_id: int) -> ProviderOutcome:
        """
        Resolve one credit check. Invoked once per submitted request.

        Raises:
            ProviderError: when the provider fails; recorded as a failed check
        """
        ...


class ProviderSimulator:
    """
    Stand-in for an external verification service.

    Outcome distribution (defaults from settings):
    - 80% completed: 30% clean (score 710-829, no flags),
      70% flagged (1-3 adverse records, score 560-679)
    - 15% still pending (no terminal outcome is produced)
    - 5% failed
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        min_delay_ms: int | None = None,
        max_delay_ms: int | None = None,
        name: str | None = None,
        today: date | None = None,
    ):
        self.rng = rng or random.Random()
        self.min_delay_ms = settings.provider_min_delay_ms if min_delay_ms is None else min_delay_ms
        self.max_delay_ms = settings.provider_max_delay_ms if max_delay_ms is None else max_delay_ms
        self.name = name or settings.provider_name
        self.completed_probability = settings.provider_completed_probability
        self.pending_probability = settings.provider_pending_probability
        self.clean_probability = settings.provider_clean_probability
        self._today = today

    async def resolve(self, request_id: int) -> ProviderOutcome:
        delay_ms = self.rng.uniform(self.min_delay_ms, self.max_delay_ms)
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
        return self.draw_outcome(request_id)

    def draw_outcome(self, request_id: int) -> ProviderOutcome:
        """Pick an outcome from the reference distribution (no delay)"""
        roll = self.rng.random()
        if roll < self.completed_probability:
            return self._completed(request_id)
        elif roll < self.completed_probability + self.pending_probability:
            return ProviderOutcome(
                status=CreditCheckStatus.PENDING,
                provider=self.name,
                raw_response={"simulated": True, "scenario": "pending", "request_id": request_id},
            )
        return ProviderOutcome.failed(
            provider=self.name,
            error_message="Simulated provider failure",
            raw_response={"simulated": True, "scenario": "failed", "request_id": request_id},
        )

    def _completed(self, request_id: int) -> ProviderOutcome:
        clean = self.rng.random() < self.clean_probability
        records = [] if clean else self._adverse_records()
        record_types = {r.type for r in records}

        if clean:
            score = 710 + self.rng.randrange(120)
        else:
            score = 560 + self.rng.randrange(120)

        return ProviderOutcome(
            status=CreditCheckStatus.COMPLETED,
            provider=self.name,
            score=score,
            flags=CreditCheckFlags(
                protests=AdverseRecordType.PROTEST in record_types,
                adverse_filings=AdverseRecordType.ADVERSE_FILING in record_types,
                insolvency_proceeding=AdverseRecordType.INSOLVENCY_PROCEEDING in record_types,
            ),
            raw_response={
                "simulated": True,
                "scenario": "completed_clean" if clean else "completed_with_flags",
                "request_id": request_id,
                "adverse_records": [
                    {
                        "type": r.type.value,
                        "date": r.date.isoformat(),
                        "amount": r.amount,
                        "description": r.description,
                    }
                    for r in records
                ],
            },
        )

    def _adverse_records(self) -> List[AdverseRecord]:
        today = self._today or date.today()
        types = list(AdverseRecordType)
        records = []
        for _ in range(1 + self.rng.randrange(3)):
            record_type = self.rng.choice(types)
            records.append(
                AdverseRecord(
                    type=record_type,
                    date=today - timedelta(days=10 + self.rng.randrange(365)),
                    amount=200 + self.rng.randrange(20_000),
                    description=_RECORD_DESCRIPTIONS[record_type],
                )
            )
        return records
