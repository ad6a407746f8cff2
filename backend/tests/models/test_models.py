"""
Tests for the database models.

Tests cover:
- Forum items keyed by their Hacker News id
- Extraction job defaults, status helpers and URL uniqueness
- Chunk embedding uniqueness per (job, granularity, index)
- Task record defaults
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from harvester.models import (
    ChunkEmbedding,
    ChunkGranularity,
    Comment,
    ExtractionJob,
    ExtractionStatus,
    Story,
    TaskRecord,
    TaskStatus,
)


@pytest.mark.asyncio
class TestForumModels:
    """Test Story and Comment."""

    async def test_story_keeps_hn_id(self, db_session):
        db_session.add(Story(id=8863, title="My YC app: Dropbox", time=1175714200, score=111))
        await db_session.commit()

        story = await db_session.get(Story, 8863)

        assert story.id == 8863
        assert story.descendants == 0
        assert story.deleted is False
        assert story.dead is False
        assert story.created_at is not None
        assert story.updated_at is not None

    async def test_comment_belongs_to_story(self, db_session):
        db_session.add(Story(id=1, title="Story", time=100))
        db_session.add(Comment(id=2, story_id=1, parent=1, text="Top", time=110))
        db_session.add(Comment(id=3, story_id=1, parent=2, text="Reply", time=120))
        await db_session.commit()

        result = await db_session.execute(
            select(Comment).where(Comment.story_id == 1).order_by(Comment.id)
        )
        comments = result.scalars().all()

        assert [c.id for c in comments] == [2, 3]
        assert comments[1].parent == 2

    async def test_story_dict(self, db_session):
        story = Story(id=5, title="Dict me", time=1)
        db_session.add(story)
        await db_session.commit()

        data = story.dict()

        assert data["id"] == 5
        assert data["title"] == "Dict me"


@pytest.mark.asyncio
class TestExtractionJob:
    """Test ExtractionJob."""

    async def test_defaults_to_pending(self, db_session):
        db_session.add(Story(id=1, time=100, url="https://example.com"))
        job = ExtractionJob(url="https://example.com", story_id=1)
        db_session.add(job)
        await db_session.commit()

        assert job.status == ExtractionStatus.PENDING
        assert job.is_pending
        assert not job.is_embeddable
        assert job.fetched_at is None

    async def test_embeddable_needs_success_and_content(self):
        job = ExtractionJob(url="u", story_id=1, status=ExtractionStatus.SUCCESS, content=None)
        assert not job.is_embeddable

        job.content = "Some text"
        assert job.is_embeddable

        job.status = ExtractionStatus.FAILED
        assert not job.is_embeddable

    async def test_url_is_unique(self, db_session):
        db_session.add(Story(id=1, time=100))
        db_session.add(Story(id=2, time=200))
        await db_session.flush()

        db_session.add(ExtractionJob(url="https://example.com/a", story_id=1))
        db_session.add(ExtractionJob(url="https://example.com/a", story_id=2))

        with pytest.raises(IntegrityError):
            await db_session.commit()


@pytest.mark.asyncio
class TestChunkEmbedding:
    """Test ChunkEmbedding."""

    async def test_unique_position_per_granularity(self, db_session):
        db_session.add(Story(id=1, time=100))
        job = ExtractionJob(url="https://example.com/a", story_id=1, status=ExtractionStatus.SUCCESS)
        db_session.add(job)
        await db_session.flush()

        vector = [0.1] * 384
        db_session.add_all([
            ChunkEmbedding(job_id=job.id, content="a", granularity=ChunkGranularity.SENTENCE,
                           chunk_index=0, total_chunks=2, embedding=vector),
            ChunkEmbedding(job_id=job.id, content="a", granularity=ChunkGranularity.PARAGRAPH,
                           chunk_index=0, total_chunks=1, embedding=vector),
        ])
        await db_session.flush()

        db_session.add(
            ChunkEmbedding(job_id=job.id, content="b", granularity=ChunkGranularity.SENTENCE,
                           chunk_index=0, total_chunks=2, embedding=vector)
        )
        with pytest.raises(IntegrityError):
            await db_session.flush()


@pytest.mark.asyncio
class TestTaskRecord:
    """Test TaskRecord."""

    async def test_defaults(self, db_session):
        record = TaskRecord(task_type="fetch-stories")
        db_session.add(record)
        await db_session.commit()

        assert record.status == TaskStatus.RUNNING
        assert record.started_at is not None
        assert not record.is_finished
