"""
Forum Models

Mirror of Hacker News items.

Models Included:
----------------
1. Story - Root item of a discussion (HN "story")
2. Comment - Threaded reply, attached to the story that owns its thread

Both tables use the external Hacker News id as primary key. Ids are never
generated locally, which is what makes re-running ingestion idempotent: the
same item always lands on the same row.

Relationships:
--------------
- Story (1) ←→ (Many) Comment
- Story (1) ←→ (0..1) ExtractionJob (one job per distinct URL)
"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from harvester.db.base import Base, String50, String500, TimestampMixin

if TYPE_CHECKING:
    from harvester.models.content import ExtractionJob


# ================================
# Story Model
# ================================

class Story(Base, TimestampMixin):
    """
    A top-level Hacker News post.

    Created the first time the story is fetched. Mutable fields (score,
    descendants, title, flags) are refreshed on later upserts; the id never
    changes.
    """

    __tablename__ = "stories"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
        comment="Hacker News item id"
    )

    title: Mapped[Optional[str]] = mapped_column(String500, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Linked article, NULL for Ask HN / text posts"
    )
    text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    author: Mapped[Optional[str]] = mapped_column(
        String50,
        nullable=True,
        index=True,
        comment="HN username ('by' in the API)"
    )
    time: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
        comment="Creation time, unix seconds"
    )
    # Index: window queries such as "stories from the last 24h"

    descendants: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Total reply count reported by HN"
    )
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dead: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ================================
    # Relationships
    # ================================

    comments: Mapped[list["Comment"]] = relationship(
        "Comment",
        back_populates="story",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )
    # lazy="noload": the thread can hold thousands of replies; load it
    # explicitly with a query when needed

    extraction_job: Mapped[Optional["ExtractionJob"]] = relationship(
        "ExtractionJob",
        back_populates="story",
        uselist=False,
        lazy="noload",
    )

    def __repr__(self) -> str:
        title = (self.title or "")[:30]
        return f"Story(id={self.id}, title='{title}')"


# ================================
# Comment Model
# ================================

class Comment(Base, TimestampMixin):
    """
    A reply to a story or to another comment.

    ``parent`` is the raw HN parent id (a comment or the story itself) and is
    deliberately not a foreign key: replies may be persisted before their
    parent is known. ``story_id`` always names the root of the thread.
    """

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
        comment="Hacker News item id"
    )

    text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[Optional[str]] = mapped_column(String50, nullable=True, index=True)
    time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    parent: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        index=True,
        comment="HN id of the parent item (story or comment)"
    )

    story_id: Mapped[int] = mapped_column(
        ForeignKey("stories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Root story of the thread"
    )

    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    dead: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    story: Mapped["Story"] = relationship(
        "Story",
        back_populates="comments",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"Comment(id={self.id}, story_id={self.story_id}, parent={self.parent})"
