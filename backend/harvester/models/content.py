"""
Content Models

Models Included:
----------------
1. ExtractionJob - One external URL to turn into text, with its status
2. ChunkEmbedding - A chunk of extracted text plus its vector
3. ExtractionStatus (Enum) - pending / success / failed
4. ChunkGranularity (Enum) - document / paragraph / sentence

Lifecycle:
----------
Ingestion creates a PENDING job per distinct story URL. The extraction
scheduler moves it to SUCCESS (title + content filled) or FAILED (error
filled). The embedding processor then attaches chunk embeddings to
successful jobs, exactly once per job.
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from harvester.db.base import (
    Base,
    BaseModel,
    EmbeddingVector,
    JSONType,
    String500,
    utcnow,
)

if TYPE_CHECKING:
    from harvester.models.forum import Story


# ================================
# Enums
# ================================

class ExtractionStatus(str, enum.Enum):
    """
    Status of an article extraction job.

    PENDING → SUCCESS
            ↘ FAILED

    Failed jobs are kept (with their error) and are not retried
    automatically.
    """

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ChunkGranularity(str, enum.Enum):
    """
    Granularity of a text chunk.

    DOCUMENT: the whole text, one chunk per article
    PARAGRAPH: ~1000 characters, 200 overlap
    SENTENCE: ~200 characters, 50 overlap
    """

    DOCUMENT = "document"
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"


# ================================
# ExtractionJob Model
# ================================

class ExtractionJob(BaseModel):
    """
    Unit of work for fetching and extracting one external article.

    ``url`` is globally unique: two stories linking the same page share a
    single job (the first story to be ingested owns it).
    """

    __tablename__ = "extraction_jobs"

    url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        unique=True,
        comment="Article URL, one job per distinct URL"
    )

    story_id: Mapped[int] = mapped_column(
        ForeignKey("stories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Story that first linked this URL"
    )

    status: Mapped[ExtractionStatus] = mapped_column(
        nullable=False,
        default=ExtractionStatus.PENDING,
        index=True,
        comment="pending / success / failed"
    )
    # Index: the scheduler polls for PENDING jobs

    title: Mapped[Optional[str]] = mapped_column(String500, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Extracted main text, NULL if the page had none"
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fetched_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Time of the last extraction attempt (UTC)"
    )

    # ================================
    # Relationships
    # ================================

    story: Mapped["Story"] = relationship(
        "Story",
        back_populates="extraction_job",
        lazy="noload",
    )

    embeddings: Mapped[list["ChunkEmbedding"]] = relationship(
        "ChunkEmbedding",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"ExtractionJob(id={self.id}, url='{self.url[:50]}', status={self.status.value})"

    @property
    def is_pending(self) -> bool:
        return self.status == ExtractionStatus.PENDING

    @property
    def is_embeddable(self) -> bool:
        """Only successful jobs with text can be chunked and embedded."""
        return self.status == ExtractionStatus.SUCCESS and self.content is not None


# ================================
# ChunkEmbedding Model
# ================================

class ChunkEmbedding(Base):
    """
    Vector representation of one chunk of an article.

    Written once per (job, granularity, chunk_index); rows are never updated.
    ``chunk_metadata`` keeps index/total/char_count so a chunk can be
    rendered without touching the other rows.
    """

    __tablename__ = "chunk_embeddings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    job_id: Mapped[int] = mapped_column(
        ForeignKey("extraction_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    granularity: Mapped[ChunkGranularity] = mapped_column(
        nullable=False,
        index=True,
        comment="document / paragraph / sentence"
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    total_chunks: Mapped[int] = mapped_column(Integer, nullable=False)

    embedding: Mapped[list[float]] = mapped_column(
        EmbeddingVector,
        nullable=False,
        comment="L2-normalized sentence embedding"
    )

    chunk_metadata: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="index / total_chunks / char_count"
    )
    # Named 'chunk_metadata' because 'metadata' is reserved by SQLAlchemy

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    job: Mapped["ExtractionJob"] = relationship(
        "ExtractionJob",
        back_populates="embeddings",
        lazy="noload",
    )

    __table_args__ = (
        UniqueConstraint(
            "job_id",
            "granularity",
            "chunk_index",
            name="uq_chunk_embeddings_job_granularity_index",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"ChunkEmbedding(id={self.id}, job_id={self.job_id}, "
            f"granularity={self.granularity.value}, index={self.chunk_index}/{self.total_chunks})"
        )
