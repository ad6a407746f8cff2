"""
Tests for ExtractionScheduler.

Tests cover:
- Success and failure write-back
- Oldest-first ordering and batch limits
- Politeness delay between jobs
- Extractor crashes turned into failed jobs
- Jobs that stopped being pending are skipped
- A storage error on one job fails that job only
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from harvester.models import ExtractionJob, ExtractionStatus, Story
from harvester.services.article_extractor import ArticleExtractor, ExtractionResult
from harvester.services.extraction_scheduler import ExtractionScheduler


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# ========================================
# Fixtures
# ========================================


@pytest_asyncio.fixture
async def jobs(db_session):
    """Three pending jobs created a minute apart, oldest first."""
    db_session.add(Story(id=1, title="Story", time=1714564800))
    await db_session.flush()

    created = []
    for i, url in enumerate([
        "https://a.example.com/one",
        "https://b.example.com/two",
        "https://c.example.com/three",
    ]):
        job = ExtractionJob(
            url=url,
            story_id=1,
            status=ExtractionStatus.PENDING,
            created_at=BASE_TIME + timedelta(minutes=i),
            updated_at=BASE_TIME + timedelta(minutes=i),
        )
        db_session.add(job)
        created.append(job)

    await db_session.commit()
    return created


@pytest.fixture
def extractor():
    """Extractor that succeeds for every URL unless told otherwise."""
    mock = Mock(spec=ArticleExtractor)
    mock.extract.side_effect = lambda url: ExtractionResult(
        url=url,
        success=True,
        title=f"Title of {url}",
        content=f"Body of {url}",
        attempts=1,
    )
    return mock


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def scheduler(db_session, extractor, sleep):
    return ExtractionScheduler(db_session, extractor, request_delay=1.5, sleep=sleep)


# ========================================
# Tests
# ========================================


@pytest.mark.asyncio
class TestExtractionScheduler:
    """Test the sequential extraction runner."""

    async def test_success_is_written_back(self, db_session, scheduler, jobs):
        summary = await scheduler.run()

        assert summary.success == 3
        assert summary.failed == 0
        assert summary.errors == []

        stored = (await db_session.execute(select(ExtractionJob))).scalars().all()
        for job in stored:
            assert job.status == ExtractionStatus.SUCCESS
            assert job.title == f"Title of {job.url}"
            assert job.content == f"Body of {job.url}"
            assert job.error is None
            assert job.fetched_at is not None

    async def test_failure_is_written_back(self, db_session, scheduler, extractor, jobs):
        """Test a failed extraction stores the error and the batch continues."""
        def extract(url):
            if "b.example.com" in url:
                return ExtractionResult(url=url, success=False, error="HTTP 404: Not Found", attempts=1)
            return ExtractionResult(url=url, success=True, title="T", content="C", attempts=1)

        extractor.extract.side_effect = extract

        summary = await scheduler.run()

        assert summary.success == 2
        assert summary.failed == 1
        assert summary.errors[0].id == jobs[1].id
        assert summary.errors[0].error == "HTTP 404: Not Found"

        failed = await db_session.get(ExtractionJob, jobs[1].id)
        assert failed.status == ExtractionStatus.FAILED
        assert failed.error == "HTTP 404: Not Found"
        assert failed.content is None
        assert failed.fetched_at is not None

    async def test_oldest_first_with_limit(self, scheduler, extractor, jobs):
        summary = await scheduler.run(limit=2)

        assert summary.success == 2
        urls = [call.args[0] for call in extractor.extract.call_args_list]
        assert urls == ["https://a.example.com/one", "https://b.example.com/two"]

    async def test_delay_between_jobs(self, scheduler, sleep, jobs):
        """Test the politeness delay is awaited between jobs, not before the first."""
        await scheduler.run()

        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.5)

    async def test_no_delay_when_disabled(self, db_session, extractor, sleep, jobs):
        scheduler = ExtractionScheduler(db_session, extractor, request_delay=0, sleep=sleep)

        await scheduler.run()

        sleep.assert_not_awaited()

    async def test_extractor_crash_marks_job_failed(self, db_session, scheduler, extractor, jobs):
        extractor.extract.side_effect = RuntimeError("parser exploded")

        summary = await scheduler.run(limit=1)

        assert summary.failed == 1
        job = await db_session.get(ExtractionJob, jobs[0].id)
        assert job.status == ExtractionStatus.FAILED
        assert job.error == "parser exploded"

    async def test_only_pending_jobs_are_picked(self, db_session, scheduler, extractor, jobs):
        jobs[0].status = ExtractionStatus.SUCCESS
        jobs[1].status = ExtractionStatus.FAILED
        await db_session.commit()

        summary = await scheduler.run()

        assert summary.success == 1
        assert extractor.extract.call_count == 1

    async def test_second_run_finds_nothing(self, scheduler, extractor, jobs):
        await scheduler.run()
        extractor.extract.reset_mock()

        summary = await scheduler.run()

        assert summary.success == summary.failed == 0
        extractor.extract.assert_not_called()

    async def test_long_title_truncated(self, db_session, scheduler, extractor, jobs):
        extractor.extract.side_effect = lambda url: ExtractionResult(
            url=url, success=True, title="t" * 900, content="c"
        )

        await scheduler.run(limit=1)

        job = await db_session.get(ExtractionJob, jobs[0].id)
        assert len(job.title) == 500

    async def test_storage_error_fails_one_job_only(self, db_session, scheduler, extractor, jobs):
        """Test a failed write-back marks that job failed and the batch continues."""
        job_ids = [job.id for job in jobs]
        real_commit = db_session.commit
        commits = 0

        async def flaky_commit():
            nonlocal commits
            commits += 1
            if commits == 1:
                raise OperationalError("UPDATE extraction_jobs", {}, Exception("disk I/O error"))
            await real_commit()

        with patch.object(db_session, "commit", side_effect=flaky_commit):
            summary = await scheduler.run()

        assert extractor.extract.call_count == 3
        assert summary.success == 2
        assert summary.failed == 1
        assert summary.errors[0].id == job_ids[0]
        assert summary.errors[0].error == "Storage error: OperationalError"

        db_session.expire_all()
        first = await db_session.get(ExtractionJob, job_ids[0])
        assert first.status == ExtractionStatus.FAILED
        assert first.error == "Storage error: OperationalError"
        assert first.content is None

        for job_id in job_ids[1:]:
            job = await db_session.get(ExtractionJob, job_id)
            assert job.status == ExtractionStatus.SUCCESS
