"""
Embedding Processor

Turns successfully extracted articles into chunk embeddings, at most once
per article.

For one article:
1. Lock the extraction job row (SELECT ... FOR UPDATE on PostgreSQL)
2. If it already has embeddings, stop and report 0
3. Chunk the content (document / paragraph / sentence)
4. Embed every chunk in batches
5. Insert all ChunkEmbedding rows and commit once

Either every chunk of an article is stored or none is: a failure anywhere
after step 1 rolls the whole article back, so a retry starts clean.
"""

import logging
from typing import Optional

from sqlalchemy import exists, func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from harvester.models.content import ChunkEmbedding, ExtractionJob, ExtractionStatus
from harvester.schemas.pipeline import EmbedSummary, ItemError
from harvester.services.processors.chunker import TextChunker
from harvester.services.processors.embedder import EmbeddingService

logger = logging.getLogger(__name__)


# ========================================
# Custom Exceptions
# ========================================


class EmbeddingProcessorError(Exception):
    """Base exception for embedding processing errors."""
    pass


class ArticleNotFoundError(EmbeddingProcessorError):
    """Raised when the extraction job does not exist."""
    pass


class ArticleNotReadyError(EmbeddingProcessorError):
    """Raised when the job has not been extracted successfully or has no text."""
    pass


# ========================================
# Embedding Processor
# ========================================


class EmbeddingProcessor:
    """
    Chunk-and-embed driver for extracted articles.

    Example:
        >>> processor = EmbeddingProcessor(embedder)
        >>> await processor.process_article(session, job_id=42)
        37
        >>> await processor.process_article(session, job_id=42)
        0
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        chunker: Optional[TextChunker] = None,
    ):
        self.embedder = embedder
        self.chunker = chunker or TextChunker()

    async def count_embeddings(self, session: AsyncSession, job_id: int) -> int:
        result = await session.execute(
            select(func.count(ChunkEmbedding.id)).where(ChunkEmbedding.job_id == job_id)
        )
        return result.scalar() or 0

    async def process_article(self, session: AsyncSession, job_id: int) -> int:
        """
        Chunk and embed one article.

        Args:
            session: Database session (committed or rolled back here)
            job_id: ExtractionJob id

        Returns:
            Number of embeddings written, 0 if the article already had some

        Raises:
            ArticleNotFoundError: Unknown job id
            ArticleNotReadyError: Job is not SUCCESS or has no content
        """
        try:
            job = (
                await session.execute(
                    select(ExtractionJob)
                    .where(ExtractionJob.id == job_id)
                    .with_for_update()
                )
            ).scalar_one_or_none()

            if job is None:
                raise ArticleNotFoundError(f"Article {job_id} not found")

            if not job.is_embeddable:
                raise ArticleNotReadyError(
                    f"Article {job_id} has no successfully extracted content"
                )

            if await self.count_embeddings(session, job_id) > 0:
                logger.debug(f"Article {job_id} already has embeddings, skipping")
                await session.rollback()
                return 0

            chunks = self.chunker.chunk(job.content)
            if not chunks:
                await session.rollback()
                return 0

            await self.embedder.initialize()
            vectors = await self.embedder.embed_batch([chunk.content for chunk in chunks])

            session.add_all(
                ChunkEmbedding(
                    job_id=job_id,
                    content=chunk.content,
                    granularity=chunk.granularity,
                    chunk_index=chunk.index,
                    total_chunks=chunk.total_chunks,
                    embedding=vector,
                    chunk_metadata=chunk.metadata,
                )
                for chunk, vector in zip(chunks, vectors)
            )
            await session.commit()

        except Exception:
            await session.rollback()
            raise

        logger.info(f"Stored {len(chunks)} embeddings for article {job_id}")
        return len(chunks)

    async def get_unembedded_job_ids(
        self,
        session: AsyncSession,
        limit: Optional[int] = None,
    ) -> list[int]:
        """Successful jobs with content and no embeddings, oldest first."""
        has_embeddings = exists().where(ChunkEmbedding.job_id == ExtractionJob.id)
        stmt = (
            select(ExtractionJob.id)
            .where(
                ExtractionJob.status == ExtractionStatus.SUCCESS,
                ExtractionJob.content.is_not(None),
                ~has_embeddings,
            )
            .order_by(ExtractionJob.created_at.asc(), ExtractionJob.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def process_all_articles(
        self,
        session: AsyncSession,
        limit: Optional[int] = None,
    ) -> EmbedSummary:
        """
        Embed every eligible article, one at a time.

        A failing article is counted and logged; the batch goes on. A lost
        database connection ends the run.

        Returns:
            EmbedSummary(processed, embeddings, errors)
        """
        job_ids = await self.get_unembedded_job_ids(session, limit)
        summary = EmbedSummary()

        logger.info(f"Found {len(job_ids)} articles without embeddings")

        for job_id in job_ids:
            try:
                written = await self.process_article(session, job_id)
            except (OperationalError, InterfaceError):
                # Lost database connection, the run cannot go on
                raise
            except Exception as e:
                logger.error(f"Failed to embed article {job_id}: {e}")
                summary.errors.append(ItemError(id=job_id, error=str(e) or type(e).__name__))
                continue

            if written > 0:
                summary.processed += 1
                summary.embeddings += written

        logger.info(
            f"Embedding finished: {summary.processed} articles, "
            f"{summary.embeddings} embeddings, {len(summary.errors)} errors"
        )
        return summary
