"""
Database Base Classes and Common Utilities

This module provides the foundation for all database models.

Key Concepts:
--------------
1. DeclarativeBase: SQLAlchemy's base class that enables ORM functionality
2. TimestampMixin: created_at / updated_at columns shared by every table
3. BaseModel: surrogate integer primary key plus timestamps
4. Portable column types: PostgreSQL types (JSONB, pgvector) that degrade
   to plain JSON on SQLite, which is what the test-suite runs against

Forum items (stories and comments) keep the external Hacker News id as their
primary key, so they use ``Base`` + ``TimestampMixin`` directly instead of
``BaseModel``.
"""

from datetime import datetime, timezone
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, DateTime, MetaData, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry

from harvester.core.config import settings


# ================================
# Naming Convention for Constraints
# ================================
# ix_stories_time, fk_comments_story_id_stories, uq_extraction_jobs_url, ...
# Stable names keep Alembic autogenerate diffs readable.
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

orm_registry = registry(metadata=metadata)


def utcnow() -> datetime:
    """Timezone-aware 'now' used for every timestamp column."""
    return datetime.now(timezone.utc)


# ================================
# Base DeclarativeBase Class
# ================================
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        class Story(Base, TimestampMixin):
            __tablename__ = "stories"
            id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    """

    registry = orm_registry
    metadata = metadata

    __tablename__: str

    def dict(self) -> dict[str, Any]:
        """
        Convert model instance to dictionary.

        Handy for logging and for Celery task results, which must be JSON.
        """
        return {
            column.key: getattr(self, column.key)
            for column in self.__mapper__.column_attrs
        }


# ================================
# Timestamp Mixin
# ================================
class TimestampMixin:
    """
    Adds ``created_at`` and ``updated_at`` (UTC, timezone-aware).

    ``updated_at`` is refreshed by SQLAlchemy on every UPDATE issued through
    the ORM. Upserts that only touch unchanged values still set it
    explicitly so "last seen" is visible.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )


# ================================
# Convenient Base Model
# ================================
class BaseModel(Base, TimestampMixin):
    """
    Base class for tables with a surrogate auto-incrementing key.

    Every subclass gets ``id``, ``created_at`` and ``updated_at``.
    """

    __abstract__ = True

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing primary key"
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"


# ================================
# Portable Column Types
# ================================
# JSONB and vector(N) on PostgreSQL, JSON on SQLite.
JSONType = JSONB().with_variant(JSON(), "sqlite")

EmbeddingVector = Vector(settings.EMBEDDING_DIMENSION).with_variant(JSON(), "sqlite")


# ================================
# String Length Constraints
# ================================
String50 = String(50)  # Example: item type, author name
String100 = String(100)  # Example: task type
String255 = String(255)
String500 = String(500)  # Example: titles
