"""FastAPI application factory"""

import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import sessionmaker
from starlette.responses import Response

from broker_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from broker_gateway.api.v1 import credit_checks, notifications
from broker_gateway.config import settings
from broker_gateway.infrastructure.bus.notification_bus import NotificationBus
from broker_gateway.infrastructure.clients.provider import CreditProvider, ProviderSimulator
from broker_gateway.infrastructure.database.session import create_session_factory
from broker_gateway.infrastructure.observability.logging import setup_logging
from broker_gateway.services.credit_checks import RequestLifecycleManager
from broker_gateway.services.notifications import NotificationPublisher, NotificationService

# Setup structured logging
setup_logging(settings.log_level)


def create_app(
    session_factory: sessionmaker | None = None,
    provider: CreditProvider | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    The store, bus and services live for the application lifespan; pending
    provider resolutions are cancelled on shutdown and stay pending.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        factory = session_factory or create_session_factory()
        bus = NotificationBus()
        publisher = NotificationPublisher(factory, bus)

        app.state.bus = bus
        app.state.notification_service = NotificationService(factory, publisher)
        manager = RequestLifecycleManager(factory, provider or ProviderSimulator(), publisher)
        app.state.lifecycle_manager = manager

        # Stale pending checks are only expired when a timeout is configured
        sweep = None
        if settings.pending_timeout_seconds is not None:
            sweep = asyncio.create_task(manager.run_expiry_sweep(settings.pending_sweep_interval_seconds))

        yield

        if sweep is not None:
            sweep.cancel()
            with suppress(asyncio.CancelledError):
                await sweep
        await manager.shutdown()
        bus.close()

    app = FastAPI(
        title="Broker Gateway",
        description="Credit check lifecycle and real-time notification service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(credit_checks.router, prefix="/v1", tags=["credit-checks"])
    app.include_router(notifications.router, prefix="/v1", tags=["notifications"])

    return app


app = create_app()
