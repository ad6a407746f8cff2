"""
Pipeline composition root.

Builds the long-lived collaborators once (HN client, article extractor,
embedding model) and exposes the three stages plus a full run:

    pipeline = Pipeline()
    await pipeline.fetch(FetchOptions(hours=6))
    await pipeline.scrape(limit=20)
    await pipeline.embed(limit=20)

Every stage opens its own session from ``session_factory`` and can be
re-run at any time: already stored stories are skipped, only PENDING jobs
are scraped, and only articles without embeddings are embedded.
"""

import asyncio
import time
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from harvester.core.logging import get_logger
from harvester.db.session import AsyncSessionLocal
from harvester.schemas.pipeline import (
    EmbedSummary,
    FetchOptions,
    FetchSummary,
    PipelineSummary,
    ScrapeSummary,
)
from harvester.services.article_extractor import ArticleExtractor
from harvester.services.extraction_scheduler import ExtractionScheduler
from harvester.services.hacker_news import HackerNewsClient
from harvester.services.ingestion import ingest_stories
from harvester.services.processors.embedder import EmbeddingService
from harvester.services.processors.embedding_processor import EmbeddingProcessor
from harvester.services.thread_fetcher import ThreadFetcher

logger = get_logger(__name__)


class Pipeline:
    """Owner of every pipeline collaborator for one process."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        client: Optional[HackerNewsClient] = None,
        extractor: Optional[ArticleExtractor] = None,
        embedder: Optional[EmbeddingService] = None,
        request_delay: Optional[float] = None,
        sleep=asyncio.sleep,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.client = client or HackerNewsClient()
        self.fetcher = ThreadFetcher(self.client)
        self.extractor = extractor or ArticleExtractor()
        self.embedder = embedder or EmbeddingService()
        self.processor = EmbeddingProcessor(self.embedder)
        self.request_delay = request_delay
        self._sleep = sleep

    async def fetch(self, options: Optional[FetchOptions] = None) -> FetchSummary:
        """Fetch stories and threads from HN and persist them."""
        options = options or FetchOptions()
        logger.info("fetch_started", **options.model_dump(exclude_none=True))

        async with self.session_factory() as session:
            summary = await ingest_stories(session, self.fetcher, options)

        logger.info(
            "fetch_finished",
            stories=summary.stories,
            comments=summary.comments,
            skipped=summary.skipped,
            jobs_created=summary.jobs_created,
            errors=len(summary.errors),
        )
        return summary

    async def scrape(self, limit: Optional[int] = None) -> ScrapeSummary:
        """Extract pending articles."""
        logger.info("scrape_started", limit=limit)

        async with self.session_factory() as session:
            scheduler = ExtractionScheduler(
                session,
                self.extractor,
                request_delay=self.request_delay,
                sleep=self._sleep,
            )
            summary = await scheduler.run(limit=limit)

        logger.info(
            "scrape_finished",
            success=summary.success,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary

    async def embed(self, limit: Optional[int] = None) -> EmbedSummary:
        """Chunk and embed extracted articles that have no embeddings yet."""
        logger.info("embed_started", limit=limit)

        await self.embedder.initialize()
        async with self.session_factory() as session:
            summary = await self.processor.process_all_articles(session, limit=limit)

        logger.info(
            "embed_finished",
            processed=summary.processed,
            embeddings=summary.embeddings,
            errors=len(summary.errors),
        )
        return summary

    async def run_full(
        self,
        options: Optional[FetchOptions] = None,
        scrape_limit: Optional[int] = None,
        embed_limit: Optional[int] = None,
    ) -> PipelineSummary:
        """Fetch, scrape and embed in sequence."""
        started = time.monotonic()

        fetch_summary = await self.fetch(options)
        scrape_summary = await self.scrape(limit=scrape_limit)
        embed_summary = await self.embed(limit=embed_limit)

        summary = PipelineSummary(
            fetch=fetch_summary,
            scrape=scrape_summary,
            embed=embed_summary,
            duration_seconds=round(time.monotonic() - started, 2),
        )
        logger.info("pipeline_finished", duration_seconds=summary.duration_seconds)
        return summary

    async def close(self) -> None:
        self.client.close()
        self.extractor.close()
        await self.embedder.shutdown()

