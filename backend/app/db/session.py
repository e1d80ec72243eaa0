"""
SQLAlchemy engine + session factory for the `sql` storage backend.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings


def build_engine(database_url: str | None = None) -> Engine:
    """
    Create an engine for *database_url* (defaults to settings.DATABASE_URL).

    SQLite connections are shared with the worker thread that runs hydration,
    so the same-thread check is disabled. In-memory SQLite needs a single
    static connection or every checkout would see an empty database.
    """
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        # Health-check connections before handing them to the app
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=5,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Avoid lazy-load errors after commit
    )
