"""
Extraction scheduler.

Drains PENDING extraction jobs one at a time, oldest first, with a fixed
politeness delay between requests. Every job ends as SUCCESS or FAILED; a
failure on one job never stops the batch.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from harvester.core.config import settings
from harvester.db.base import utcnow
from harvester.models.content import ExtractionJob, ExtractionStatus
from harvester.schemas.pipeline import ItemError, ScrapeSummary
from harvester.services.article_extractor import ArticleExtractor, ExtractionResult

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 500


class ExtractionScheduler:
    """
    Sequential, rate-limited runner for extraction jobs.

    Example:
        >>> scheduler = ExtractionScheduler(session, ArticleExtractor())
        >>> summary = await scheduler.run(limit=20)
        >>> summary.success, summary.failed
        (17, 3)
    """

    def __init__(
        self,
        session: AsyncSession,
        extractor: ArticleExtractor,
        request_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.extractor = extractor
        self.request_delay = (
            request_delay if request_delay is not None else settings.SCRAPER_REQUEST_DELAY_SECONDS
        )
        self._sleep = sleep

    async def get_pending_jobs(self, limit: Optional[int] = None) -> List[ExtractionJob]:
        """Pending jobs, oldest first."""
        stmt = (
            select(ExtractionJob)
            .where(ExtractionJob.status == ExtractionStatus.PENDING)
            .order_by(ExtractionJob.created_at.asc(), ExtractionJob.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def run(self, limit: Optional[int] = None) -> ScrapeSummary:
        """
        Process up to ``limit`` pending jobs.

        Returns:
            ScrapeSummary(success, failed, skipped, errors)
        """
        jobs = await self.get_pending_jobs(limit)
        summary = ScrapeSummary()

        logger.info(f"Found {len(jobs)} pending extraction jobs")

        for position, job in enumerate(jobs):
            if position > 0 and self.request_delay > 0:
                await self._sleep(self.request_delay)

            # Another worker may have picked the job up since we listed it
            await self.session.refresh(job)
            if job.status != ExtractionStatus.PENDING:
                summary.skipped += 1
                continue

            job_id = job.id
            try:
                result = await self.process_job(job)
            except SQLAlchemyError as e:
                logger.error(f"Failed to store outcome of job {job_id}: {e}")
                await self.session.rollback()
                error = f"Storage error: {type(e).__name__}"
                await self._mark_failed(job_id, error)
                summary.failed += 1
                summary.errors.append(ItemError(id=job_id, error=error))
                continue

            if result.success:
                summary.success += 1
            else:
                summary.failed += 1
                summary.errors.append(ItemError(id=job_id, error=result.error or "Unknown error"))

        logger.info(
            f"Extraction finished: {summary.success} succeeded, "
            f"{summary.failed} failed, {summary.skipped} skipped"
        )
        return summary

    async def process_job(self, job: ExtractionJob) -> ExtractionResult:
        """
        Extract one job's URL and write the outcome back.

        Unexpected extractor exceptions are turned into a failed result.
        Database errors propagate to ``run``, which fails the job and moves on.
        """
        logger.info(f"Extracting job {job.id}: {job.url}")

        try:
            result = await asyncio.to_thread(self.extractor.extract, job.url)
        except Exception as e:
            logger.exception(f"Extractor crashed on {job.url}")
            result = ExtractionResult(
                url=job.url,
                success=False,
                error=str(e) or type(e).__name__,
            )

        job.fetched_at = utcnow()
        if result.success:
            job.status = ExtractionStatus.SUCCESS
            job.title = result.title[:TITLE_MAX_LENGTH] if result.title else None
            job.content = result.content
            job.error = None
        else:
            job.status = ExtractionStatus.FAILED
            job.error = result.error

        await self.session.commit()
        return result

    async def _mark_failed(self, job_id: int, error: str) -> None:
        """Best-effort FAILED write after a storage error on ``job_id``."""
        try:
            await self.session.execute(
                update(ExtractionJob)
                .where(ExtractionJob.id == job_id)
                .values(status=ExtractionStatus.FAILED, error=error, fetched_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Could not mark job {job_id} as failed: {e}")
            await self.session.rollback()
