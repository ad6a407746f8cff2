"""HN Harvester: Hacker News ingestion, article extraction and embeddings."""

__version__ = "0.1.0"
