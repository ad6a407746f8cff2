"""
Thread fetcher.

Turns a selection policy into a list of story ids, then downloads each
selected story together with its reply tree.

Selection:
----------
- count=N: the first N ids of the listing
- hours=H: walk the listing (newest first) and keep stories whose ``time``
  is within the last H hours; stop at the first older story. Stories fetched
  here are cached so the thread walk does not download them again.

Reply tree:
-----------
Depth-first pre-order with an explicit stack, so very deep threads cannot
exhaust the call stack. Top-level replies are depth 0. A reply that fails to
download is recorded and its subtree is skipped; the rest of the thread is
still collected.

All calls are blocking (requests); async callers wrap them in
``asyncio.to_thread``.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from harvester.core.config import settings
from harvester.schemas.hacker_news import HnItem
from harvester.schemas.pipeline import FetchOptions, ItemError
from harvester.services.hacker_news import HackerNewsAPIError, HackerNewsClient

logger = logging.getLogger(__name__)


@dataclass
class StorySelection:
    """Story ids chosen by a selection policy plus ids that failed to load."""

    ids: List[int] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)


@dataclass
class FetchedThread:
    """A story and every reply collected for it, in pre-order."""

    story: HnItem
    comments: List[HnItem] = field(default_factory=list)
    errors: List[ItemError] = field(default_factory=list)


class ThreadFetcher:
    """
    Selects stories and downloads their threads.

    Example:
        >>> fetcher = ThreadFetcher(HackerNewsClient())
        >>> selection = fetcher.select_story_ids(FetchOptions(hours=6))
        >>> thread = fetcher.fetch_thread(selection.ids[0])
        >>> len(thread.comments)
        42
    """

    SECONDS_PER_HOUR = 3600

    def __init__(
        self,
        client: HackerNewsClient,
        now: Callable[[], float] = time.time,
    ):
        self.client = client
        self._now = now
        self._prefetched: Dict[int, HnItem] = {}

    # ========================================
    # Story Selection
    # ========================================

    def select_story_ids(
        self,
        options: FetchOptions,
        default_hours: Optional[float] = None,
    ) -> StorySelection:
        """
        Apply the selection policy to the configured listing.

        Args:
            options: hours or count (mutually exclusive) plus listing
            default_hours: Window used when neither hours nor count is set

        Returns:
            StorySelection with ids in listing order
        """
        self._prefetched.clear()
        ids = self.client.fetch_story_ids(options.listing)

        if options.count is not None:
            selected = ids[: options.count]
            logger.info(f"Selected {len(selected)} of {len(ids)} {options.listing} stories by count")
            return StorySelection(ids=selected)

        hours = options.hours
        if hours is None:
            hours = default_hours if default_hours is not None else settings.FETCH_DEFAULT_HOURS

        return self._select_within_window(ids, hours)

    def _select_within_window(self, ids: List[int], hours: float) -> StorySelection:
        cutoff = self._now() - hours * self.SECONDS_PER_HOUR
        selection = StorySelection()

        for story_id in ids:
            try:
                item = self.client.fetch_item(story_id)
            except HackerNewsAPIError as e:
                logger.warning(f"Could not load story {story_id} during selection: {e}")
                selection.errors.append(ItemError(id=story_id, error=str(e)))
                continue

            if item is None:
                continue

            if item.time is None:
                logger.warning(f"Story {story_id} has no time, skipping")
                continue

            # Listings are newest first: the first older story ends the window
            if item.time < cutoff:
                break

            self._prefetched[story_id] = item
            selection.ids.append(story_id)

        logger.info(f"Selected {len(selection.ids)} stories from the last {hours}h")
        return selection

    # ========================================
    # Thread Download
    # ========================================

    def fetch_thread(
        self,
        story_id: int,
        max_comment_depth: Optional[int] = None,
    ) -> Optional[FetchedThread]:
        """
        Download a story and its replies.

        Args:
            story_id: HN id of the story
            max_comment_depth: Depth limit (top-level replies are depth 0);
                None walks the whole tree

        Returns:
            FetchedThread, or None if the id is unknown or not a story

        Raises:
            HackerNewsAPIError: If the story itself cannot be downloaded
        """
        story = self._prefetched.pop(story_id, None)
        if story is None:
            story = self.client.fetch_item(story_id)

        if story is None or not story.is_story:
            logger.debug(f"Item {story_id} is missing or not a story, ignoring")
            return None

        thread = FetchedThread(story=story)
        self._collect_comments(thread, max_comment_depth)

        logger.info(
            f"Fetched story {story_id} with {len(thread.comments)} comments"
            + (f" ({len(thread.errors)} errors)" if thread.errors else "")
        )
        return thread

    def _collect_comments(self, thread: FetchedThread, max_depth: Optional[int]) -> None:
        """Walk the reply tree depth-first, children before next sibling."""
        stack = [(kid, 0) for kid in reversed(thread.story.kids)]
        visited = set()

        while stack:
            item_id, depth = stack.pop()

            if max_depth is not None and depth >= max_depth:
                continue
            if item_id in visited:
                continue
            visited.add(item_id)

            try:
                item = self.client.fetch_item(item_id)
            except HackerNewsAPIError as e:
                logger.warning(f"Could not load comment {item_id}: {e}")
                thread.errors.append(ItemError(id=item_id, error=str(e)))
                continue

            if item is None or not item.is_comment:
                continue

            thread.comments.append(item)
            stack.extend((kid, depth + 1) for kid in reversed(item.kids))
