"""
Celery tasks for background processing.
"""

from harvester.tasks.pipeline_tasks import (
    fetch_stories,
    generate_embeddings,
    run_full_pipeline,
    scrape_articles,
)

__all__ = [
    "fetch_stories",
    "scrape_articles",
    "generate_embeddings",
    "run_full_pipeline",
]
