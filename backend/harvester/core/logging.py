"""
Structured logging setup.

Two kinds of loggers coexist in the code base:

- ``get_logger(__name__)`` returns a structlog logger. Infrastructure modules
  (database, pipeline, Celery tasks) use it with an event name plus key/value
  pairs: ``logger.info("stories_fetched", count=12)``.
- Service modules use plain ``logging.getLogger(__name__)``.

``setup_logging()`` routes both through the same stdlib handler so the output
format (JSON or console) is uniform.
"""

import logging
import sys

import structlog

from harvester.core.config import settings


_configured = False


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Safe to call more than once; only the first call has an effect unless
    the process explicitly resets ``_configured``.

    Args:
        level: Log level name (default: settings.LOG_LEVEL)
        log_format: "json" or "text" (default: settings.LOG_FORMAT)
    """
    global _configured
    if _configured:
        return

    level_name = (level or settings.LOG_LEVEL).upper()
    use_json = (log_format or settings.LOG_FORMAT) == "json"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level_name)

    # Chatty third-party loggers
    for noisy in ("urllib3", "sentence_transformers", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
