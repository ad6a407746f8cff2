"""
Integration tests package.

Integration tests run several pipeline stages together against the
in-memory test database. External services (Hacker News, article sites,
the embedding model) are faked, so no network access is needed.

To run only integration tests:
    pytest -m integration

To skip them:
    pytest -m "not integration"
"""
