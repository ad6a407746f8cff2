"""
Celery tasks for the ingestion pipeline.

One task per stage plus a full run:

- pipeline.fetch_stories        (Task Record type "fetch-stories")
- pipeline.scrape_articles      (Task Record type "scrape-articles")
- pipeline.generate_embeddings  (Task Record type "generate-embeddings")
- pipeline.run_full_pipeline    (Task Record type "full-pipeline")

Each invocation is wrapped in a TaskRecord and returns its summary as a
JSON-serializable dict.
"""

import asyncio
import concurrent.futures
from typing import Any, Awaitable, Callable, Optional

from celery import Task
from celery.signals import worker_process_init, worker_process_shutdown
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError

from harvester.core.logging import get_logger
from harvester.db.session import engine
from harvester.pipeline import Pipeline
from harvester.schemas.pipeline import FetchOptions
from harvester.services.hacker_news import HackerNewsServerError
from harvester.services.task_tracker import track_task
from harvester.workers.celery_app import celery_app

logger = get_logger(__name__)


# ========================================
# Async Helper
# ========================================

def run_async(coro):
    """
    Run a coroutine from a synchronous Celery task.

    Uses asyncio.run() when no loop is running (Celery worker). When called
    from inside a running loop (some test setups) it runs the coroutine on
    a fresh loop in a helper thread instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, coro).result()


async def run_tracked(
    pipeline: Pipeline,
    task_type: str,
    metadata: dict[str, Any],
    work: Callable[[Pipeline], Awaitable[BaseModel]],
) -> dict:
    """
    Run ``work`` against ``pipeline`` inside a TaskRecord.

    The engine's pooled connections are bound to the event loop that opened
    them, and every Celery task runs on a new loop, so the pool is disposed
    once the task is done.
    """
    try:
        async with track_task(pipeline.session_factory, task_type, metadata) as tracker:
            summary = await work(pipeline)
            tracker.result = summary.model_dump(mode="json")
        return tracker.result
    finally:
        await engine.dispose()


# ========================================
# Base Task Class
# ========================================

class PipelineTask(Task):
    """Base task class with retry logic for infrastructure outages."""

    autoretry_for = (OperationalError, HackerNewsServerError)
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True

    _pipeline: Optional[Pipeline] = None

    @property
    def pipeline(self) -> Pipeline:
        """The worker process's Pipeline, shared by every pipeline task."""
        if PipelineTask._pipeline is None:
            PipelineTask._pipeline = Pipeline()
        return PipelineTask._pipeline


@worker_process_init.connect
def open_pipeline(**kwargs) -> None:
    """Load the pipeline and its embedding model once per worker process."""
    pipeline = Pipeline()
    run_async(pipeline.embedder.initialize())
    PipelineTask._pipeline = pipeline
    logger.info("pipeline_opened")


@worker_process_shutdown.connect
def close_pipeline(**kwargs) -> None:
    """Release the HTTP sessions and the embedding model."""
    pipeline, PipelineTask._pipeline = PipelineTask._pipeline, None
    if pipeline is not None:
        run_async(pipeline.close())
        logger.info("pipeline_closed")


# ========================================
# Main Tasks
# ========================================

@celery_app.task(
    base=PipelineTask,
    name='pipeline.fetch_stories',
    bind=True,
    max_retries=3
)
def fetch_stories(
    self,
    hours: Optional[float] = None,
    count: Optional[int] = None,
    max_comment_depth: Optional[int] = None,
    listing: Optional[str] = None,
) -> dict:
    """
    Fetch HN stories with their threads and persist them.

    Args:
        hours: Look-back window (mutually exclusive with count)
        count: Number of stories from the top of the listing
        max_comment_depth: Reply depth limit, None for whole threads
        listing: "new", "top" or "best" (default from settings)

    Returns:
        FetchSummary as a dict
    """
    options = FetchOptions(
        hours=hours,
        count=count,
        max_comment_depth=max_comment_depth,
        **({"listing": listing} if listing else {}),
    )
    logger.info("task_fetch_stories", task_id=self.request.id, **options.model_dump(exclude_none=True))

    return run_async(run_tracked(
        self.pipeline,
        "fetch-stories",
        options.model_dump(mode="json", exclude_none=True),
        lambda pipeline: pipeline.fetch(options),
    ))


@celery_app.task(
    base=PipelineTask,
    name='pipeline.scrape_articles',
    bind=True,
    max_retries=3
)
def scrape_articles(self, limit: Optional[int] = None) -> dict:
    """
    Extract pending articles, oldest first.

    Returns:
        ScrapeSummary as a dict
    """
    logger.info("task_scrape_articles", task_id=self.request.id, limit=limit)

    return run_async(run_tracked(
        self.pipeline,
        "scrape-articles",
        {"limit": limit},
        lambda pipeline: pipeline.scrape(limit=limit),
    ))


@celery_app.task(
    base=PipelineTask,
    name='pipeline.generate_embeddings',
    bind=True,
    max_retries=3
)
def generate_embeddings(self, limit: Optional[int] = None) -> dict:
    """
    Chunk and embed extracted articles that have no embeddings yet.

    Returns:
        EmbedSummary as a dict
    """
    logger.info("task_generate_embeddings", task_id=self.request.id, limit=limit)

    return run_async(run_tracked(
        self.pipeline,
        "generate-embeddings",
        {"limit": limit},
        lambda pipeline: pipeline.embed(limit=limit),
    ))


@celery_app.task(
    base=PipelineTask,
    name='pipeline.run_full_pipeline',
    bind=True,
    max_retries=1
)
def run_full_pipeline(
    self,
    hours: Optional[float] = None,
    count: Optional[int] = None,
    scrape_limit: Optional[int] = None,
    embed_limit: Optional[int] = None,
) -> dict:
    """
    Fetch, scrape and embed in one go.

    Returns:
        PipelineSummary as a dict
    """
    options = FetchOptions(hours=hours, count=count)
    metadata = {
        **options.model_dump(mode="json", exclude_none=True),
        "scrape_limit": scrape_limit,
        "embed_limit": embed_limit,
    }
    logger.info("task_run_full_pipeline", task_id=self.request.id, **metadata)

    return run_async(run_tracked(
        self.pipeline,
        "full-pipeline",
        metadata,
        lambda pipeline: pipeline.run_full(
            options,
            scrape_limit=scrape_limit,
            embed_limit=embed_limit,
        ),
    ))
