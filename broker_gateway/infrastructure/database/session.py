"""Database engine and session factory construction"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from broker_gateway.config import settings
from broker_gateway.infrastructure.database.models import Base


def create_session_factory(database_url: str | None = None, create_schema: bool = True) -> sessionmaker:
    """
    Build the store used by every service for one application lifetime.

    SQLite is opened without the same-thread check because provider resolutions
    write from the event loop while requests may run in worker threads.
    """
    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
        engine = create_engine(
            url,
            pool_pre_ping=True,  # Verify connections before using
            pool_size=10,
            max_overflow=10,
            pool_recycle=3600,
        )

    if create_schema:
        Base.metadata.create_all(bind=engine)

    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
