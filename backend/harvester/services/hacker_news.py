"""
Hacker News API client.

Thin wrapper around the public Firebase API
(https://github.com/HackerNews/API) with retry and backoff:

- ``fetch_item(id)`` - one story / comment / job / poll, ``None`` if not found
- ``fetch_new_story_ids()`` / ``fetch_top_story_ids()`` / ``fetch_best_story_ids()``
- ``fetch_max_item_id()`` - the current largest item id

Transient failures (network errors, timeouts, 5xx) are retried with
exponential backoff ``base_delay * 2 ** attempt``. 4xx responses and bodies
that are not valid JSON (or do not look like an HN item) fail immediately.
"""

import logging
import time
from typing import Any, Callable, List, Optional

import requests
from pydantic import ValidationError

from harvester.core.config import settings
from harvester.schemas.hacker_news import HnItem

logger = logging.getLogger(__name__)


# ========================================
# Custom Exceptions
# ========================================


class HackerNewsAPIError(Exception):
    """Base exception for Hacker News API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class HackerNewsClientError(HackerNewsAPIError):
    """4xx response. Not retried."""
    pass


class HackerNewsServerError(HackerNewsAPIError):
    """5xx response or network failure that persisted through every retry."""
    pass


class HackerNewsResponseError(HackerNewsAPIError):
    """Response body is not valid JSON or does not match the expected shape."""
    pass


# ========================================
# Hacker News Client
# ========================================


class HackerNewsClient:
    """
    Client for the Hacker News Firebase API.

    Example:
        >>> client = HackerNewsClient()
        >>> ids = client.fetch_new_story_ids()
        >>> story = client.fetch_item(ids[0])
        >>> story.title
        'Show HN: ...'

    The HTTP session and the sleep function are injectable so tests can run
    without network access or real delays.
    """

    LISTING_ENDPOINTS = {
        "new": "newstories.json",
        "top": "topstories.json",
        "best": "beststories.json",
    }
    MAX_LISTING_SIZE = 500  # the API never returns more than this

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root (default from settings)
            timeout: Per-request timeout in seconds (default from settings)
            max_attempts: Total attempts per call, first one included
            base_delay: Backoff base in seconds
            session: requests.Session to reuse (created if omitted)
            sleep: Function used to wait between attempts
        """
        self.base_url = (base_url or settings.HN_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HN_REQUEST_TIMEOUT
        self.max_attempts = max(1, max_attempts or settings.HN_RETRY_ATTEMPTS)
        self.base_delay = (
            base_delay if base_delay is not None else settings.HN_RETRY_BASE_DELAY_SECONDS
        )
        self.session = session or requests.Session()
        self._sleep = sleep

    # ========================================
    # Public API
    # ========================================

    def fetch_item(self, item_id: int) -> Optional[HnItem]:
        """
        Fetch a single item.

        Args:
            item_id: Hacker News item id

        Returns:
            Parsed item, or None when the API answers ``null`` (unknown id)

        Raises:
            HackerNewsAPIError: After retries are exhausted or on a
                non-retryable failure
        """
        data = self._get_json(f"item/{item_id}.json")
        if data is None:
            return None

        if not isinstance(data, dict):
            raise HackerNewsResponseError(
                f"Unexpected payload for item {item_id}: {type(data).__name__}"
            )

        try:
            return HnItem.model_validate(data)
        except ValidationError as e:
            raise HackerNewsResponseError(f"Malformed item {item_id}: {e}") from e

    def fetch_story_ids(self, listing: str = "new") -> List[int]:
        """
        Fetch the ids of one of the story listings, most relevant first.

        Args:
            listing: "new", "top" or "best"

        Returns:
            Up to 500 story ids
        """
        endpoint = self.LISTING_ENDPOINTS.get(listing)
        if endpoint is None:
            raise ValueError(f"Unknown story listing: {listing}")

        data = self._get_json(endpoint)
        if not isinstance(data, list) or not all(isinstance(i, int) for i in data):
            raise HackerNewsResponseError(f"Malformed {listing} story listing")

        return data[: self.MAX_LISTING_SIZE]

    def fetch_new_story_ids(self) -> List[int]:
        """Newest stories first."""
        return self.fetch_story_ids("new")

    def fetch_top_story_ids(self) -> List[int]:
        return self.fetch_story_ids("top")

    def fetch_best_story_ids(self) -> List[int]:
        return self.fetch_story_ids("best")

    def fetch_max_item_id(self) -> int:
        """Return the current largest item id."""
        data = self._get_json("maxitem.json")
        if not isinstance(data, int):
            raise HackerNewsResponseError("Malformed maxitem response")
        return data

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HackerNewsClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ========================================
    # Transport
    # ========================================

    def _get_json(self, path: str) -> Any:
        """
        GET ``{base_url}/{path}`` and decode the JSON body, retrying
        transient failures.
        """
        url = f"{self.base_url}/{path}"
        last_error: Optional[HackerNewsAPIError] = None

        for attempt in range(self.max_attempts):
            try:
                response = self.session.get(
                    url,
                    timeout=self.timeout,
                    headers={"Accept": "application/json"},
                )
            except requests.RequestException as e:
                last_error = HackerNewsServerError(f"Request to {url} failed: {e}")
            else:
                status = response.status_code

                if 400 <= status < 500:
                    raise HackerNewsClientError(
                        f"HTTP {status}: {response.reason}", status_code=status
                    )

                if status >= 500:
                    last_error = HackerNewsServerError(
                        f"HTTP {status}: {response.reason}", status_code=status
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise HackerNewsResponseError(
                            f"Invalid JSON from {url}: {e}", status_code=status
                        ) from e

            if attempt < self.max_attempts - 1:
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    f"{last_error} (attempt {attempt + 1}/{self.max_attempts}), "
                    f"retrying in {delay:.1f}s"
                )
                self._sleep(delay)

        logger.error(f"Giving up on {url} after {self.max_attempts} attempts: {last_error}")
        raise last_error
