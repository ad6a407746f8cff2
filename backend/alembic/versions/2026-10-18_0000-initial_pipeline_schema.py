"""initial_pipeline_schema

Revision ID: 4b1d9e7c2a10
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from pgvector.sqlalchemy import Vector

# revision identifiers, used by Alembic.
revision: str = '4b1d9e7c2a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


EMBEDDING_DIMENSION = 384

extraction_status = sa.Enum('PENDING', 'SUCCESS', 'FAILED', name='extractionstatus')
chunk_granularity = sa.Enum('DOCUMENT', 'PARAGRAPH', 'SENTENCE', name='chunkgranularity')
task_status = sa.Enum('RUNNING', 'COMPLETED', 'FAILED', name='taskstatus')


def upgrade() -> None:
    """
    Create the pipeline schema.

    Tables:
    1. stories - HN root items, keyed by HN id
    2. comments - HN replies, keyed by HN id, owned by a story
    3. extraction_jobs - one article URL to extract, unique per URL
    4. chunk_embeddings - chunk text + vector(384) per article
    5. task_records - one row per pipeline invocation

    Plus an HNSW cosine index on chunk_embeddings.embedding.
    """
    op.execute('CREATE EXTENSION IF NOT EXISTS vector')

    # ================================
    # stories
    # ================================
    op.create_table(
        'stories',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False, comment='Hacker News item id'),
        sa.Column('title', sa.String(length=500), nullable=True),
        sa.Column('url', sa.Text(), nullable=True, comment='Linked article, NULL for Ask HN / text posts'),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('author', sa.String(length=50), nullable=True, comment="HN username ('by' in the API)"),
        sa.Column('time', sa.Integer(), nullable=True, comment='Creation time, unix seconds'),
        sa.Column('descendants', sa.Integer(), nullable=False, comment='Total reply count reported by HN'),
        sa.Column('deleted', sa.Boolean(), nullable=False),
        sa.Column('dead', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stories')),
    )
    op.create_index(op.f('ix_stories_time'), 'stories', ['time'], unique=False)
    op.create_index(op.f('ix_stories_author'), 'stories', ['author'], unique=False)

    # ================================
    # comments
    # ================================
    op.create_table(
        'comments',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False, comment='Hacker News item id'),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('author', sa.String(length=50), nullable=True),
        sa.Column('time', sa.Integer(), nullable=True),
        sa.Column('parent', sa.Integer(), nullable=True, comment='HN id of the parent item (story or comment)'),
        sa.Column('story_id', sa.Integer(), nullable=False, comment='Root story of the thread'),
        sa.Column('deleted', sa.Boolean(), nullable=False),
        sa.Column('dead', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.ForeignKeyConstraint(['story_id'], ['stories.id'], name=op.f('fk_comments_story_id_stories'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_comments')),
    )
    op.create_index(op.f('ix_comments_author'), 'comments', ['author'], unique=False)
    op.create_index(op.f('ix_comments_parent'), 'comments', ['parent'], unique=False)
    op.create_index(op.f('ix_comments_story_id'), 'comments', ['story_id'], unique=False)

    # ================================
    # extraction_jobs
    # ================================
    op.create_table(
        'extraction_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        sa.Column('url', sa.Text(), nullable=False, comment='Article URL, one job per distinct URL'),
        sa.Column('story_id', sa.Integer(), nullable=False, comment='Story that first linked this URL'),
        sa.Column('status', extraction_status, nullable=False, comment='pending / success / failed'),
        sa.Column('title', sa.String(length=500), nullable=True),
        sa.Column('content', sa.Text(), nullable=True, comment='Extracted main text, NULL if the page had none'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('fetched_at', sa.DateTime(timezone=True), nullable=True, comment='Time of the last extraction attempt (UTC)'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.ForeignKeyConstraint(['story_id'], ['stories.id'], name=op.f('fk_extraction_jobs_story_id_stories'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_extraction_jobs')),
        sa.UniqueConstraint('url', name=op.f('uq_extraction_jobs_url')),
    )
    op.create_index(op.f('ix_extraction_jobs_story_id'), 'extraction_jobs', ['story_id'], unique=False)
    op.create_index(op.f('ix_extraction_jobs_status'), 'extraction_jobs', ['status'], unique=False)

    # ================================
    # chunk_embeddings
    # ================================
    op.create_table(
        'chunk_embeddings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('granularity', chunk_granularity, nullable=False, comment='document / paragraph / sentence'),
        sa.Column('chunk_index', sa.Integer(), nullable=False),
        sa.Column('total_chunks', sa.Integer(), nullable=False),
        sa.Column('embedding', Vector(EMBEDDING_DIMENSION), nullable=False, comment='L2-normalized sentence embedding'),
        sa.Column('chunk_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='index / total_chunks / char_count'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['job_id'], ['extraction_jobs.id'], name=op.f('fk_chunk_embeddings_job_id_extraction_jobs'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_chunk_embeddings')),
        sa.UniqueConstraint('job_id', 'granularity', 'chunk_index', name='uq_chunk_embeddings_job_granularity_index'),
    )
    op.create_index(op.f('ix_chunk_embeddings_job_id'), 'chunk_embeddings', ['job_id'], unique=False)
    op.create_index(op.f('ix_chunk_embeddings_granularity'), 'chunk_embeddings', ['granularity'], unique=False)

    # HNSW index for cosine similarity search (<=> operator)
    op.execute(
        'CREATE INDEX ix_chunk_embeddings_embedding_hnsw ON chunk_embeddings '
        'USING hnsw (embedding vector_cosine_ops) WITH (m = 16, ef_construction = 64)'
    )

    # ================================
    # task_records
    # ================================
    op.create_table(
        'task_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='Auto-incrementing primary key'),
        sa.Column('task_type', sa.String(length=100), nullable=False, comment='fetch-stories / scrape-articles / generate-embeddings / full-pipeline'),
        sa.Column('status', task_status, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('task_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='Invocation options and result summary'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Timestamp when record was last updated (UTC)'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_task_records')),
    )
    op.create_index(op.f('ix_task_records_task_type'), 'task_records', ['task_type'], unique=False)
    op.create_index(op.f('ix_task_records_status'), 'task_records', ['status'], unique=False)


def downgrade() -> None:
    """Drop every pipeline table and enum type."""
    op.drop_index(op.f('ix_task_records_status'), table_name='task_records')
    op.drop_index(op.f('ix_task_records_task_type'), table_name='task_records')
    op.drop_table('task_records')

    op.execute('DROP INDEX IF EXISTS ix_chunk_embeddings_embedding_hnsw')
    op.drop_index(op.f('ix_chunk_embeddings_granularity'), table_name='chunk_embeddings')
    op.drop_index(op.f('ix_chunk_embeddings_job_id'), table_name='chunk_embeddings')
    op.drop_table('chunk_embeddings')

    op.drop_index(op.f('ix_extraction_jobs_status'), table_name='extraction_jobs')
    op.drop_index(op.f('ix_extraction_jobs_story_id'), table_name='extraction_jobs')
    op.drop_table('extraction_jobs')

    op.drop_index(op.f('ix_comments_story_id'), table_name='comments')
    op.drop_index(op.f('ix_comments_parent'), table_name='comments')
    op.drop_index(op.f('ix_comments_author'), table_name='comments')
    op.drop_table('comments')

    op.drop_index(op.f('ix_stories_author'), table_name='stories')
    op.drop_index(op.f('ix_stories_time'), table_name='stories')
    op.drop_table('stories')

    task_status.drop(op.get_bind(), checkfirst=True)
    chunk_granularity.drop(op.get_bind(), checkfirst=True)
    extraction_status.drop(op.get_bind(), checkfirst=True)
