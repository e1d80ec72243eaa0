"""
SQLAlchemy ORM models.

The watchlist only needs a byte-oriented key/value table; each row is one
namespaced key holding an opaque serialized payload.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, LargeBinary, String
from sqlalchemy.orm import DeclarativeBase


# ── Base ──────────────────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Timestamp helper ──────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Models ────────────────────────────────────────────────────────────────────

class StorageEntry(Base):
    """One durable key/value pair (the localStorage analogue)."""
    __tablename__ = "storage_entries"

    key = Column(
        String(255),
        primary_key=True,
        comment="Namespaced storage key, e.g. tmovies_watchlist",
    )
    value = Column(LargeBinary, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )
