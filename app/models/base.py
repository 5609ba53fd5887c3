"""
SQLAlchemy Base Models

Provides the declarative base and reusable mixins for all ORM models.
Alembic reads ``Base.metadata`` for autogenerate comparisons.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Declarative base class for all SQLAlchemy ORM models."""

    pass


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at timestamp fields.

    Behavior:
        - created_at / updated_at: set by the database on INSERT
        - updated_at: refreshed on any ORM-issued UPDATE (onupdate)

    Note:
        Uses timezone-aware timestamps for proper UTC handling.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=True,
    )


class MetadataMixin:
    """Free-form JSONB ``metadata`` column (exposed as ``extra_metadata``)."""

    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )
