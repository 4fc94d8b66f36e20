"""Database engine and session factory"""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from oar_engine.config import settings
from oar_engine.infrastructure.database.models import Base


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """Create an engine; pooled for servers, single shared connection for in-memory SQLite"""
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create missing tables"""
    Base.metadata.create_all(bind=engine)
