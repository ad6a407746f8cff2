"""Pipeline services: HN client, fetching, ingestion, extraction and scheduling."""
