"""
Pydantic schemas for Hacker News API payloads.

The API returns loosely-typed JSON: every field except ``id`` may be missing,
and deleted items keep only ``id``, ``deleted``, ``time`` and ``type``.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


HnItemType = Literal["story", "comment", "job", "poll", "pollopt"]


class HnItem(BaseModel):
    """A single item from ``/item/{id}.json``."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., description="Unique item id")
    type: Optional[HnItemType] = Field(None, description="Item kind")
    by: Optional[str] = Field(None, description="Author username")
    time: Optional[int] = Field(None, description="Creation time, unix seconds")
    text: Optional[str] = Field(None, description="HTML body (comments, Ask HN)")
    url: Optional[str] = Field(None, description="Linked URL (stories)")
    score: Optional[int] = None
    title: Optional[str] = None
    kids: List[int] = Field(default_factory=list, description="Direct reply ids, ranked")
    parent: Optional[int] = None
    descendants: Optional[int] = None
    deleted: bool = False
    dead: bool = False

    # Poll fields are accepted but not used by the pipeline
    poll: Optional[int] = None
    parts: List[int] = Field(default_factory=list)

    @property
    def is_story(self) -> bool:
        return self.type == "story"

    @property
    def is_comment(self) -> bool:
        return self.type == "comment"
