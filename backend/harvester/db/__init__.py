"""Database utilities and session management."""

from harvester.db.base import (
    Base,
    BaseModel,
    EmbeddingVector,
    JSONType,
    String50,
    String100,
    String255,
    String500,
    TimestampMixin,
)
from harvester.db.session import (
    AsyncSessionLocal,
    check_db_health,
    close_db,
    engine,
    get_session,
    init_db,
    reset_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "TimestampMixin",
    # Column types
    "JSONType",
    "EmbeddingVector",
    "String50",
    "String100",
    "String255",
    "String500",
    # Session management
    "engine",
    "AsyncSessionLocal",
    "get_session",
    "init_db",
    "reset_db",
    "close_db",
    "check_db_health",
]
