"""
Article extractor.

Fetches an external article and pulls out its title and main text.

Each call goes through:

    CHECK_PERMISSION → FETCH → EXTRACT → SUCCESS
           ↓             ↓        ↓
        FAILURE       FAILURE  FAILURE

- Permission: robots.txt of the article's origin, fetched once per origin and
  cached for the life of the process. An unreachable or non-200 robots.txt
  allows everything.
- Fetch: 4xx fails immediately; 5xx and network errors are retried with
  exponential backoff. Only text/html responses are accepted.
- Extract: BeautifulSoup + lxml. Boilerplate elements are dropped, the title
  comes from og:title → twitter:title → <title> → first <h1>, the body from
  <article> → <main> → [role=main] → <body>.

The extractor never raises for an unreachable or unparsable page; it
returns an ``ExtractionResult`` with ``success=False`` and an error string.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, Union
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import requests
from bs4 import BeautifulSoup

from harvester.core.config import settings

logger = logging.getLogger(__name__)


# ========================================
# Custom Exceptions
# ========================================


class ArticleExtractorError(Exception):
    """Base exception for article extraction errors."""
    pass


class ArticleFetchError(ArticleExtractorError):
    """Raised when the article could not be downloaded."""

    def __init__(self, message: str, attempts: int = 1, retriable: bool = True):
        super().__init__(message)
        self.attempts = attempts
        self.retriable = retriable


class UnsupportedContentTypeError(ArticleFetchError):
    """Raised when the response is not HTML."""

    def __init__(self, content_type: str, attempts: int = 1):
        super().__init__(
            f"Unsupported content type: {content_type or 'unknown'}",
            attempts=attempts,
            retriable=False,
        )
        self.content_type = content_type


# ========================================
# Results
# ========================================


@dataclass
class ExtractedContent:
    """Title and text pulled out of an HTML document."""

    url: str
    title: Optional[str]
    content: Optional[str]


@dataclass
class ExtractionResult:
    """Outcome of one extraction attempt for a URL."""

    url: str
    success: bool
    title: Optional[str] = None
    content: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0


# ========================================
# Content Extraction
# ========================================

NON_CONTENT_SELECTOR = (
    "script, style, nav, header, footer, aside, iframe, noscript, "
    "[role=navigation], [role=banner], [role=complementary]"
)


def _first_non_empty(*candidates: Optional[str]) -> Optional[str]:
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    return tag.get("content")


def normalize_whitespace(text: str) -> str:
    """Trim every line and drop the blank ones."""
    lines = (line.strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def extract_content(html: Union[str, bytes], url: str) -> ExtractedContent:
    """
    Extract the title and main text of an HTML page.

    Args:
        html: Raw HTML (bytes let BeautifulSoup honor the page's charset)
        url: Page URL, carried through for reference

    Returns:
        ExtractedContent; ``content`` is None when no text remains
    """
    soup = BeautifulSoup(html, "lxml")

    for element in soup.select(NON_CONTENT_SELECTOR):
        element.decompose()

    title_tag = soup.find("title")
    h1_tag = soup.find("h1")
    title = _first_non_empty(
        _meta_content(soup, property="og:title"),
        _meta_content(soup, name="twitter:title"),
        title_tag.get_text() if title_tag else None,
        h1_tag.get_text() if h1_tag else None,
    )

    container = (
        soup.find("article")
        or soup.find("main")
        or soup.find(attrs={"role": "main"})
        or soup.body
        or soup
    )
    content = normalize_whitespace(container.get_text())

    return ExtractedContent(url=url, title=title, content=content or None)


# ========================================
# Robots.txt Policy
# ========================================


class RobotsPolicy:
    """
    robots.txt checker with a per-origin, process-lifetime cache.

    Fails open: if robots.txt cannot be fetched or does not answer 200, every
    path on that origin is allowed.
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.user_agent = user_agent or settings.SCRAPER_USER_AGENT
        self.timeout = timeout or settings.ROBOTS_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self._cache: Dict[str, RobotFileParser] = {}
        self._lock = threading.Lock()

    def is_allowed(self, url: str) -> bool:
        """Return True if our user agent may fetch ``url``."""
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            # Nothing to check; the fetch step reports the bad URL
            return True

        origin = f"{parsed.scheme}://{parsed.netloc}"
        parser = self._get_parser(origin)
        return parser.can_fetch(self.user_agent, url)

    def _get_parser(self, origin: str) -> RobotFileParser:
        with self._lock:
            parser = self._cache.get(origin)
        if parser is not None:
            return parser

        robots_url = f"{origin}/robots.txt"
        parser = RobotFileParser()
        parser.set_url(robots_url)

        try:
            response = self.session.get(
                robots_url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.debug(f"Could not read robots.txt for {origin}: {e}")
            parser.parse([])
        else:
            if response.status_code == 200:
                parser.parse(response.text.splitlines())
            else:
                logger.debug(f"robots.txt for {origin} returned {response.status_code}")
                parser.parse([])

        with self._lock:
            self._cache.setdefault(origin, parser)
            return self._cache[origin]

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


# ========================================
# Article Extractor
# ========================================


class ArticleExtractor:
    """
    Polite, retrying article fetcher plus HTML extraction.

    Example:
        >>> extractor = ArticleExtractor()
        >>> result = extractor.extract("https://example.com/post")
        >>> result.success, result.title
        (True, 'Example post')
    """

    ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
    ACCEPT_LANGUAGE = "en-US,en;q=0.5"

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        respect_robots_txt: Optional[bool] = None,
        robots_policy: Optional[RobotsPolicy] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.user_agent = user_agent or settings.SCRAPER_USER_AGENT
        self.timeout = timeout or settings.SCRAPER_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts or settings.SCRAPER_RETRY_ATTEMPTS)
        self.base_delay = (
            base_delay if base_delay is not None else settings.SCRAPER_RETRY_BASE_DELAY_SECONDS
        )
        self.respect_robots_txt = (
            respect_robots_txt
            if respect_robots_txt is not None
            else settings.SCRAPER_RESPECT_ROBOTS_TXT
        )
        self.session = session or requests.Session()
        self.robots = robots_policy or RobotsPolicy(
            user_agent=self.user_agent, session=self.session
        )
        self._sleep = sleep

    def close(self) -> None:
        self.session.close()
        if self.robots.session is not self.session:
            self.robots.session.close()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": self.ACCEPT_HEADER,
            "Accept-Language": self.ACCEPT_LANGUAGE,
        }

    def extract(self, url: str) -> ExtractionResult:
        """
        Run permission check, fetch and extraction for one URL.

        Returns:
            ExtractionResult; never raises for network or HTTP failures
        """
        if self.respect_robots_txt and not self.robots.is_allowed(url):
            logger.info(f"robots.txt forbids {url}")
            return ExtractionResult(url=url, success=False, error="Blocked by robots.txt")

        try:
            html, attempts = self.fetch_html(url)
        except ArticleFetchError as e:
            logger.warning(f"Failed to fetch {url}: {e}")
            return ExtractionResult(url=url, success=False, error=str(e), attempts=e.attempts)

        extracted = extract_content(html, url)
        return ExtractionResult(
            url=url,
            success=True,
            title=extracted.title,
            content=extracted.content,
            attempts=attempts,
        )

    def fetch_html(self, url: str) -> Tuple[bytes, int]:
        """
        Download ``url``, retrying transient failures.

        Returns:
            (raw body, number of attempts used)

        Raises:
            ArticleFetchError: 4xx, non-HTML response, or retries exhausted
        """
        last_error = "Unknown error"

        for attempt in range(self.max_attempts):
            try:
                response = self.session.get(
                    url,
                    headers=self.headers,
                    timeout=self.timeout,
                    allow_redirects=True,
                )
            except requests.Timeout:
                last_error = f"Request timed out after {self.timeout}s"
            except requests.RequestException as e:
                last_error = str(e) or type(e).__name__
            else:
                status = response.status_code

                if 400 <= status < 500:
                    raise ArticleFetchError(
                        f"HTTP {status}: {response.reason}",
                        attempts=attempt + 1,
                        retriable=False,
                    )

                if status >= 500:
                    last_error = f"HTTP {status}: {response.reason}"
                else:
                    content_type = response.headers.get("Content-Type", "")
                    if "text/html" not in content_type.lower():
                        raise UnsupportedContentTypeError(content_type, attempts=attempt + 1)
                    return response.content, attempt + 1

            if attempt < self.max_attempts - 1:
                delay = self.base_delay * (2 ** attempt)
                logger.debug(f"Retrying {url} in {delay:.1f}s after: {last_error}")
                self._sleep(delay)

        raise ArticleFetchError(last_error, attempts=self.max_attempts)
