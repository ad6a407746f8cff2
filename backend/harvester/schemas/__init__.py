"""Pydantic schemas."""

from harvester.schemas.hacker_news import HnItem, HnItemType
from harvester.schemas.pipeline import (
    EmbedSummary,
    FetchOptions,
    FetchSummary,
    ItemError,
    PipelineSummary,
    ScrapeSummary,
    StoryListing,
)

__all__ = [
    "HnItem",
    "HnItemType",
    "FetchOptions",
    "StoryListing",
    "ItemError",
    "FetchSummary",
    "ScrapeSummary",
    "EmbedSummary",
    "PipelineSummary",
]
