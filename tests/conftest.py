"""Pytest fixtures for testing"""

import asyncio
import pytest
from typing import Generator, List, Optional, Union
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from broker_gateway.api.main import create_app
from broker_gateway.domain.models import CreditCheckStatus, ProviderOutcome
from broker_gateway.infrastructure.bus.notification_bus import NotificationBus
from broker_gateway.infrastructure.database.models import Base
from broker_gateway.infrastructure.database.session import create_session_factory
from broker_gateway.services.credit_checks import RequestLifecycleManager
from broker_gateway.services.notifications import NotificationPublisher, NotificationService


class ScriptedProvider:
    """Provider returning queued outcomes; still processing once the queue is empty"""

    name = "Scripted Provider"

    def __init__(self, outcomes: Optional[List[Union[ProviderOutcome, Exception]]] = None):
        self.outcomes = list(outcomes or [])
        self.calls: List[int] = []
        self.gate: Optional[asyncio.Event] = None

    async def resolve(self, request_id: int) -> ProviderOutcome:
        self.calls.append(request_id)
        if self.gate is not None:
            await self.gate.wait()
        if not self.outcomes:
            return ProviderOutcome(status=CreditCheckStatus.PENDING, provider=self.name)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """File-backed SQLite store, one per test"""
    factory = create_session_factory(f"sqlite:///{tmp_path / 'test.db'}")
    engine = factory.kw["bind"]
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def publisher(session_factory: sessionmaker, bus: NotificationBus) -> NotificationPublisher:
    return NotificationPublisher(session_factory, bus)


@pytest.fixture
def notification_service(session_factory: sessionmaker, publisher: NotificationPublisher) -> NotificationService:
    return NotificationService(session_factory, publisher)


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def manager(
    session_factory: sessionmaker, provider: ScriptedProvider, publisher: NotificationPublisher
) -> RequestLifecycleManager:
    return RequestLifecycleManager(session_factory, provider, publisher)


@pytest.fixture
def client(session_factory: sessionmaker, provider: ScriptedProvider) -> Generator[TestClient, None, None]:
    """FastAPI test client wired to the test store and a provider that never finishes"""
    app = create_app(session_factory=session_factory, provider=provider)
    with TestClient(app) as test_client:
        yield test_client
