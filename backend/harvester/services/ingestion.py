"""
Ingestion persister.

Writes fetched threads to storage so that re-running ingestion never
duplicates anything:

- stories and comments are upserted by their HN id
- a story with a URL gets a PENDING extraction job only if no job exists
  for that exact URL yet (INSERT ... ON CONFLICT DO NOTHING, so two
  concurrent runs cannot both create one)
- each thread is committed on its own, so an interrupted run keeps every
  thread that was fully written

Per-item API failures are collected in the summary. Storage errors are not
caught here: they abort the run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from harvester.core.config import settings
from harvester.db.base import utcnow
from harvester.models.content import ExtractionJob, ExtractionStatus
from harvester.models.forum import Comment, Story
from harvester.schemas.hacker_news import HnItem
from harvester.schemas.pipeline import FetchOptions, FetchSummary, ItemError
from harvester.services.hacker_news import HackerNewsAPIError
from harvester.services.thread_fetcher import FetchedThread, ThreadFetcher

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 500


@dataclass
class PersistedThread:
    """What persisting one thread changed."""

    story_id: int
    comments: int
    job_created: bool


class IngestionPersister:
    """
    Idempotent writer for stories, comments and extraction jobs.

    Example:
        >>> persister = IngestionPersister(session)
        >>> if not await persister.story_exists(thread.story.id):
        ...     await persister.persist_thread(thread)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ========================================
    # Lookups
    # ========================================

    async def story_exists(self, story_id: int) -> bool:
        result = await self.session.execute(
            select(Story.id).where(Story.id == story_id)
        )
        return result.scalar_one_or_none() is not None

    async def job_exists_for_url(self, url: str) -> bool:
        result = await self.session.execute(
            select(ExtractionJob.id).where(ExtractionJob.url == url)
        )
        return result.scalar_one_or_none() is not None

    # ========================================
    # Upserts
    # ========================================

    async def upsert_story(self, item: HnItem) -> Story:
        """Create the story or refresh its mutable fields."""
        values = {
            "title": item.title[:TITLE_MAX_LENGTH] if item.title else None,
            "url": item.url or None,
            "text": item.text,
            "score": item.score,
            "author": item.by,
            "time": item.time,
            "descendants": item.descendants or 0,
            "deleted": item.deleted,
            "dead": item.dead,
        }

        story = await self.session.get(Story, item.id)
        if story is None:
            story = Story(id=item.id, **values)
            self.session.add(story)
        else:
            for key, value in values.items():
                setattr(story, key, value)
            story.updated_at = utcnow()

        return story

    async def upsert_comment(self, item: HnItem, story_id: int) -> Comment:
        """Create the comment or refresh its mutable fields."""
        values = {
            "text": item.text,
            "author": item.by,
            "time": item.time,
            "parent": item.parent,
            "story_id": story_id,
            "deleted": item.deleted,
            "dead": item.dead,
        }

        comment = await self.session.get(Comment, item.id)
        if comment is None:
            comment = Comment(id=item.id, **values)
            self.session.add(comment)
        else:
            for key, value in values.items():
                setattr(comment, key, value)
            comment.updated_at = utcnow()

        return comment

    async def ensure_extraction_job(self, story: Story) -> bool:
        """
        Create a PENDING job for the story's URL unless one already exists.

        The story must already be flushed (the job references it).

        Returns:
            True if a job was created
        """
        if not story.url:
            return False

        now = utcnow()
        stmt = (
            self._insert(ExtractionJob)
            .values(
                url=story.url,
                story_id=story.id,
                status=ExtractionStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["url"])
            .returning(ExtractionJob.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    def _insert(self, model):
        """Dialect-specific INSERT supporting ON CONFLICT."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(model)
        if dialect == "sqlite":
            return sqlite_insert(model)
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")

    # ========================================
    # Thread Persistence
    # ========================================

    async def persist_thread(self, thread: FetchedThread) -> PersistedThread:
        """
        Write a story, its extraction job and its comments in one transaction.

        Raises:
            SQLAlchemyError: The transaction is rolled back and the error
                propagates
        """
        try:
            story = await self.upsert_story(thread.story)
            await self.session.flush()

            job_created = await self.ensure_extraction_job(story)

            for item in thread.comments:
                await self.upsert_comment(item, story_id=story.id)

            await self.session.commit()

        except SQLAlchemyError:
            await self.session.rollback()
            logger.exception(f"Failed to persist thread {thread.story.id}")
            raise

        return PersistedThread(
            story_id=thread.story.id,
            comments=len(thread.comments),
            job_created=job_created,
        )


# ========================================
# Fetch-and-persist Driver
# ========================================


async def ingest_stories(
    session: AsyncSession,
    fetcher: ThreadFetcher,
    options: Optional[FetchOptions] = None,
    default_hours: Optional[float] = None,
) -> FetchSummary:
    """
    Select stories, skip the ones already stored, download and persist the rest.

    Args:
        session: Database session (committed once per thread)
        fetcher: ThreadFetcher wrapping a HackerNewsClient
        options: Selection policy (default: last 24 hours of new stories)
        default_hours: Window used when options set neither hours nor count

    Returns:
        FetchSummary with counts and per-item errors
    """
    options = options or FetchOptions()
    max_depth = options.max_comment_depth
    if max_depth is None:
        max_depth = settings.FETCH_MAX_COMMENT_DEPTH

    persister = IngestionPersister(session)
    summary = FetchSummary()

    selection = await asyncio.to_thread(
        fetcher.select_story_ids,
        options,
        default_hours if default_hours is not None else settings.FETCH_DEFAULT_HOURS,
    )
    summary.errors.extend(selection.errors)

    logger.info(f"Processing {len(selection.ids)} candidate stories")

    for story_id in selection.ids:
        if await persister.story_exists(story_id):
            summary.skipped += 1
            continue

        try:
            thread = await asyncio.to_thread(fetcher.fetch_thread, story_id, max_depth)
        except HackerNewsAPIError as e:
            logger.warning(f"Failed to fetch story {story_id}: {e}")
            summary.errors.append(ItemError(id=story_id, error=str(e)))
            continue

        if thread is None:
            summary.ignored += 1
            continue

        persisted = await persister.persist_thread(thread)

        summary.stories += 1
        summary.comments += persisted.comments
        summary.jobs_created += int(persisted.job_created)
        summary.errors.extend(thread.errors)

    logger.info(
        f"Ingestion finished: {summary.stories} stories, {summary.comments} comments, "
        f"{summary.skipped} skipped, {summary.jobs_created} new jobs, "
        f"{len(summary.errors)} errors"
    )
    return summary
