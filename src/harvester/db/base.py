"""
Declarative base, the JSON column type and the timestamp mixin shared by
the harvester tables.
"""
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for data sources, collection runs and properties."""

    id: Any


class TimestampMixin:
    """Database-maintained row creation and modification times."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Row insert time"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="Row last write time"
    )


def import_all_models():
    """Register every mapped table on Base.metadata (Alembic, create_all)."""
    from src.harvester.db import models  # noqa: F401
