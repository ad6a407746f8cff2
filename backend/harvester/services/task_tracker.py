"""
Task Record tracking.

Wraps a pipeline invocation in a TaskRecord row:

    async with track_task(session_factory, "fetch-stories", {"hours": 6}) as tracker:
        summary = await do_work()
        tracker.result = summary.model_dump()

The row is written as RUNNING before the work starts. On exit it becomes
COMPLETED with the result stored in ``task_metadata['result']``, or FAILED
with the error text when the body raises (the exception is re-raised).

The record uses its own session so that the body's commits and rollbacks
never touch it.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from harvester.db.base import utcnow
from harvester.models.task import TaskRecord, TaskStatus

logger = logging.getLogger(__name__)


class TaskTracker:
    """Handle yielded by ``track_task``; set ``result`` before leaving the block."""

    def __init__(self, record_id: int):
        self.record_id = record_id
        self.result: Optional[dict[str, Any]] = None


async def start_task(
    session: AsyncSession,
    task_type: str,
    metadata: Optional[dict[str, Any]] = None,
) -> TaskRecord:
    """Insert a RUNNING record and commit it."""
    record = TaskRecord(
        task_type=task_type,
        status=TaskStatus.RUNNING,
        started_at=utcnow(),
        task_metadata=dict(metadata or {}),
    )
    session.add(record)
    await session.commit()
    return record


async def finish_task(
    session: AsyncSession,
    record_id: int,
    result: Optional[dict[str, Any]] = None,
    error: Optional[str] = None,
) -> TaskRecord:
    """Mark a record COMPLETED (no error) or FAILED (error given)."""
    record = await session.get(TaskRecord, record_id)
    if record is None:
        raise LookupError(f"Task record {record_id} not found")

    record.completed_at = utcnow()
    if error is None:
        record.status = TaskStatus.COMPLETED
        # Reassign so the JSON column registers the change
        record.task_metadata = {**(record.task_metadata or {}), "result": result}
    else:
        record.status = TaskStatus.FAILED
        record.error = error

    await session.commit()
    return record


@asynccontextmanager
async def track_task(
    session_factory: async_sessionmaker,
    task_type: str,
    metadata: Optional[dict[str, Any]] = None,
) -> AsyncIterator[TaskTracker]:
    """
    Record one pipeline invocation as a TaskRecord.

    Args:
        session_factory: Factory for the record's own session
        task_type: e.g. "fetch-stories"
        metadata: Invocation options stored with the record
    """
    async with session_factory() as session:
        record = await start_task(session, task_type, metadata)
        record_id = record.id

    logger.info(f"Task {task_type} started (record {record_id})")
    tracker = TaskTracker(record_id)

    try:
        yield tracker
    except Exception as e:
        async with session_factory() as session:
            await finish_task(session, record_id, error=str(e) or type(e).__name__)
        logger.error(f"Task {task_type} failed (record {record_id}): {e}")
        raise

    async with session_factory() as session:
        await finish_task(session, record_id, result=tracker.result)
    logger.info(f"Task {task_type} completed (record {record_id})")
