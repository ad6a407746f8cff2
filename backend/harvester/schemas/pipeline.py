"""
Pydantic schemas for pipeline inputs and results.

Every stage returns a summary instead of raising on per-item failures:
counts plus a list of ``{id, error}`` pairs. Summaries are plain pydantic
models so Celery tasks can return ``summary.model_dump()``.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from harvester.core.config import settings


StoryListing = Literal["new", "top", "best"]


# ========================================
# Request Schemas
# ========================================


class FetchOptions(BaseModel):
    """
    Selection policy for the thread fetcher.

    Exactly one of ``hours`` / ``count`` may be set. When neither is given
    the fetcher looks back ``default_hours`` (24 by default).
    """

    hours: Optional[float] = Field(
        None,
        gt=0,
        description="Only stories created within the last N hours",
        examples=[24, 6]
    )

    count: Optional[int] = Field(
        None,
        gt=0,
        description="Only the first N stories of the listing",
        examples=[30]
    )

    max_comment_depth: Optional[int] = Field(
        None,
        ge=0,
        description="Reply depth limit; top-level replies are depth 0. None = unbounded"
    )

    listing: StoryListing = Field(
        default_factory=lambda: settings.HN_STORY_LISTING,
        description="Which HN listing to read story ids from"
    )

    @model_validator(mode="after")
    def check_exclusive_policy(self) -> "FetchOptions":
        """hours and count are mutually exclusive."""
        if self.hours is not None and self.count is not None:
            raise ValueError("hours and count are mutually exclusive")
        return self


# ========================================
# Result Schemas
# ========================================


class ItemError(BaseModel):
    """A failure tied to one item (story id, comment id or job id)."""

    id: Union[int, str]
    error: str


class FetchSummary(BaseModel):
    """Result of a fetch-and-persist run."""

    stories: int = Field(0, description="Stories persisted in this run")
    comments: int = Field(0, description="Comments persisted in this run")
    skipped: int = Field(0, description="Stories already in storage")
    ignored: int = Field(0, description="Ids that were missing or not stories")
    jobs_created: int = Field(0, description="New extraction jobs")
    errors: List[ItemError] = Field(default_factory=list)


class ScrapeSummary(BaseModel):
    """Result of an extraction scheduler batch."""

    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[ItemError] = Field(default_factory=list)


class EmbedSummary(BaseModel):
    """Result of an embedding batch."""

    processed: int = Field(0, description="Articles that received embeddings")
    embeddings: int = Field(0, description="Chunk embeddings written")
    errors: List[ItemError] = Field(default_factory=list)


class PipelineSummary(BaseModel):
    """Result of running fetch, scrape and embed back to back."""

    fetch: FetchSummary
    scrape: ScrapeSummary
    embed: EmbedSummary
    duration_seconds: float = 0.0
