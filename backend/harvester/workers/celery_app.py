"""
Celery application instance and configuration.
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from harvester.core.config import settings
from harvester.core.logging import setup_logging

# Create Celery application
celery_app = Celery(
    "harvester",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=60 * 60,  # 1 hour, a 24h fetch with deep threads is slow
    task_soft_time_limit=55 * 60,
    result_expires=3600,  # 1 hour
    worker_prefetch_multiplier=1,  # stages are long-running, take one at a time
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'fetch-stories': {
        'task': 'pipeline.fetch_stories',
        'schedule': crontab(minute='0', hour=f'*/{settings.FETCH_INTERVAL_HOURS}'),
        'kwargs': {'hours': settings.FETCH_INTERVAL_HOURS + 1},  # overlap so no story falls between runs
        'options': {'queue': 'pipeline'},
    },
    'scrape-articles': {
        'task': 'pipeline.scrape_articles',
        'schedule': crontab(minute=f'*/{settings.SCRAPE_INTERVAL_MINUTES}'),
        'kwargs': {'limit': settings.SCRAPE_BATCH_LIMIT},
        'options': {'queue': 'pipeline'},
    },
    'generate-embeddings': {
        'task': 'pipeline.generate_embeddings',
        'schedule': crontab(minute=f'*/{settings.EMBED_INTERVAL_MINUTES}'),
        'kwargs': {'limit': settings.EMBED_BATCH_LIMIT},
        'options': {'queue': 'pipeline'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'pipeline.*': {'queue': 'pipeline'},
}

# Auto-discover tasks from harvester.tasks
celery_app.autodiscover_tasks(['harvester.tasks'])


@celery_setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Use our structlog configuration instead of Celery's default handlers."""
    setup_logging()
