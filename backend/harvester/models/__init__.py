"""
Database models.

Importing this package registers every table on ``Base.metadata``.
"""

from harvester.models.content import (
    ChunkEmbedding,
    ChunkGranularity,
    ExtractionJob,
    ExtractionStatus,
)
from harvester.models.forum import Comment, Story
from harvester.models.task import TaskRecord, TaskStatus

__all__ = [
    # Forum
    "Story",
    "Comment",
    # Content
    "ExtractionJob",
    "ExtractionStatus",
    "ChunkEmbedding",
    "ChunkGranularity",
    # Tasks
    "TaskRecord",
    "TaskStatus",
]
