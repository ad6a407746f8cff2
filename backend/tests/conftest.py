"""
Pytest configuration and fixtures.

This file is automatically discovered by pytest and provides
shared fixtures for all test modules.

The suite runs against an in-memory SQLite database (aiosqlite), so the
environment is configured before anything from ``harvester`` is imported.
Network access is never needed: the Hacker News API, article pages and the
embedding model are replaced by the fakes defined below.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "testing"
os.environ["LOG_FORMAT"] = "text"

from typing import AsyncGenerator, Dict, Iterable, List, Optional  # noqa: E402
from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import requests  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

import harvester.models  # noqa: E402,F401
from harvester.db.base import Base  # noqa: E402
from harvester.schemas.hacker_news import HnItem  # noqa: E402
from harvester.services.hacker_news import HackerNewsAPIError  # noqa: E402


# ================================
# Database Fixtures
# ================================

@pytest_asyncio.fixture
async def test_engine():
    """
    Create a fresh in-memory database for one test.

    StaticPool keeps a single connection alive, otherwise every checkout
    would see a new, empty in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,  # Set to True for SQL debugging
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    """Session factory bound to the test engine, configured like AsyncSessionLocal."""
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session for one test.

    Services under test commit on their own, so isolation comes from the
    per-test database rather than from an outer transaction.
    """
    async with session_factory() as session:
        yield session


# ================================
# Hacker News Fakes
# ================================

class FakeHackerNewsClient:
    """
    In-memory stand-in for HackerNewsClient.

    ``items`` maps id to item payload (dict) or to an exception to raise.
    Every fetch_item call is recorded in ``requested``.
    """

    def __init__(
        self,
        items: Optional[Dict[int, object]] = None,
        listing: Optional[Iterable[int]] = None,
    ):
        self.items: Dict[int, object] = dict(items or {})
        self.listing: List[int] = list(listing or [])
        self.requested: List[int] = []
        self.closed = False

    def fetch_item(self, item_id: int) -> Optional[HnItem]:
        self.requested.append(item_id)
        payload = self.items.get(item_id)

        if payload is None:
            return None
        if isinstance(payload, HackerNewsAPIError):
            raise payload
        return HnItem.model_validate({"id": item_id, **payload})

    def fetch_story_ids(self, listing: str = "new") -> List[int]:
        return list(self.listing)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_hn_client() -> FakeHackerNewsClient:
    """Empty fake client; tests fill ``items`` and ``listing``."""
    return FakeHackerNewsClient()


# ================================
# HTTP Fakes
# ================================

def make_response(
    status_code: int = 200,
    json_data=None,
    text: str = "",
    content: Optional[bytes] = None,
    headers: Optional[dict] = None,
    reason: str = "OK",
    invalid_json: bool = False,
) -> Mock:
    """Mock of requests.Response with just the attributes the services read."""
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.reason = reason
    response.text = text
    response.content = content if content is not None else text.encode("utf-8")
    response.headers = headers or {}

    if invalid_json:
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    else:
        response.json.return_value = json_data

    return response


@pytest.fixture
def response_factory():
    """Factory fixture for fake HTTP responses, see make_response()."""
    return make_response


@pytest.fixture
def http_session() -> Mock:
    """Mock requests.Session; set ``get.side_effect`` / ``get.return_value`` per test."""
    return Mock(spec=requests.Session)


# ================================
# Embedding Fakes
# ================================

class FakeEmbeddingService:
    """
    Deterministic embedder with the same async surface as EmbeddingService.

    Vectors depend only on the text, so repeated runs store identical rows.
    ``fail_on`` makes embed_batch raise when any text contains that string.
    """

    def __init__(self, dimension: int = 384, fail_on: Optional[str] = None):
        self.dimension = dimension
        self.fail_on = fail_on
        self.initialize_calls = 0
        self.batches: List[List[str]] = []
        self.is_initialized = False

    async def initialize(self) -> None:
        self.initialize_calls += 1
        self.is_initialized = True

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if self.fail_on is not None and any(self.fail_on in text for text in texts):
            raise RuntimeError("embedding model crashed")

        self.batches.append(list(texts))
        return [self._vector(text) for text in texts]

    async def shutdown(self) -> None:
        self.is_initialized = False

    def _vector(self, text: str) -> List[float]:
        seed = sum(ord(char) for char in text) % 97
        return [((seed + i) % 11) / 10.0 for i in range(self.dimension)]


@pytest.fixture
def fake_embedder() -> FakeEmbeddingService:
    return FakeEmbeddingService()
