"""
Task Record Model

One row per pipeline invocation (fetch, scrape, embed, full pipeline).
Rows start as RUNNING and end as COMPLETED (with the result summary in
``task_metadata['result']``) or FAILED (with ``error``). Finished rows are
never touched again.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from harvester.db.base import BaseModel, JSONType, String100, utcnow


class TaskStatus(str, enum.Enum):
    """Lifecycle of a Task Record."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskRecord(BaseModel):
    """Observability record for a single pipeline run."""

    __tablename__ = "task_records"

    task_type: Mapped[str] = mapped_column(
        String100,
        nullable=False,
        index=True,
        comment="fetch-stories / scrape-articles / generate-embeddings / full-pipeline"
    )
    status: Mapped[TaskStatus] = mapped_column(
        nullable=False,
        default=TaskStatus.RUNNING,
        index=True,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    task_metadata: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Invocation options and result summary"
    )

    def __repr__(self) -> str:
        return f"TaskRecord(id={self.id}, type={self.task_type}, status={self.status.value})"

    @property
    def is_finished(self) -> bool:
        return self.status != TaskStatus.RUNNING
