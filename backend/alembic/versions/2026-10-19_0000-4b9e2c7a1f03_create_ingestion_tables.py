"""create_ingestion_tables

Revision ID: 4b9e2c7a1f03
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '4b9e2c7a1f03'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_BAG = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  comment='Timestamp when record was created (UTC)'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  comment='Timestamp when record was last updated (UTC)'),
    ]


def upgrade() -> None:
    """
    Create the ingestion schema.

    Tables:
    1. workspaces - owning collection for content
    2. contents - one row per ingested item, status state machine
    3. processed_contents - chunks / summary / transcript, one per content
    4. content_triggers - one-shot idempotency keys (summary, classification)
    5. chat_sessions / chat_messages - persisted chat history (read-only here)

    Enum columns are stored as VARCHAR(20) with lowercase values.
    """

    # ================================
    # workspaces
    # ================================
    op.create_table(
        'workspaces',
        sa.Column('id', sa.String(36), nullable=False, comment='Opaque UUID primary key'),
        sa.Column('owner_id', sa.String(100), nullable=False, comment='Opaque id of the owning user'),
        sa.Column('name', sa.String(255), nullable=False, comment='Workspace display name'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_workspaces'),
    )
    op.create_index('ix_workspaces_owner_id', 'workspaces', ['owner_id'])

    # ================================
    # contents
    # ================================
    op.create_table(
        'contents',
        sa.Column('id', sa.String(36), nullable=False, comment='Opaque UUID primary key'),
        sa.Column('workspace_id', sa.String(36), nullable=False, comment='Owning workspace'),
        sa.Column('type', sa.String(20), nullable=False, comment='Source kind (immutable)'),
        sa.Column('status', sa.String(20), nullable=False, comment='Processing state machine position'),
        sa.Column('title', sa.String(500), nullable=False,
                  comment='Best current human-readable title (monotonically improving)'),
        sa.Column('raw_url', sa.String(1000), nullable=True, comment='External source URL (YouTube) or NULL'),
        sa.Column('extracted_text', sa.Text(), nullable=True,
                  comment='Full sanitized plain text once extraction has run'),
        sa.Column('content_metadata', JSON_BAG, nullable=False, comment='Extraction provenance bag (merge-only)'),
        sa.Column('file_size', sa.Integer(), nullable=True, comment='Uploaded file size in bytes'),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['workspace_id'], ['workspaces.id'],
            name='fk_contents_workspace_id_workspaces',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_contents'),
    )
    op.create_index('ix_contents_workspace_id', 'contents', ['workspace_id'])
    op.create_index('ix_contents_status', 'contents', ['status'])

    # ================================
    # processed_contents
    # ================================
    op.create_table(
        'processed_contents',
        sa.Column('id', sa.String(36), nullable=False, comment='Opaque UUID primary key'),
        sa.Column('content_id', sa.String(36), nullable=False, comment='One-to-one link to contents'),
        sa.Column('chunks', JSON_BAG, nullable=False, comment='Ordered chunk list'),
        sa.Column('summary', sa.Text(), nullable=True,
                  comment='AI summary (markdown); NULL until summarization succeeds'),
        sa.Column('transcript', sa.Text(), nullable=True, comment='Denormalized transcript for video sources'),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['content_id'], ['contents.id'],
            name='fk_processed_contents_content_id_contents',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_processed_contents'),
        sa.UniqueConstraint('content_id', name='uq_processed_contents_content_id'),
    )

    # ================================
    # content_triggers
    # ================================
    op.create_table(
        'content_triggers',
        sa.Column('id', sa.String(36), nullable=False, comment='Opaque UUID primary key'),
        sa.Column('content_id', sa.String(36), nullable=False, comment='Content this key belongs to'),
        sa.Column('kind', sa.String(20), nullable=False, comment='Operation kind'),
        sa.Column('result', JSON_BAG, nullable=True, comment='Stored outcome returned to repeat callers'),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['content_id'], ['contents.id'],
            name='fk_content_triggers_content_id_contents',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_content_triggers'),
        sa.UniqueConstraint('content_id', 'kind', name='uq_content_triggers_content_id_kind'),
    )
    op.create_index('ix_content_triggers_content_id', 'content_triggers', ['content_id'])

    # ================================
    # chat_sessions / chat_messages
    # ================================
    op.create_table(
        'chat_sessions',
        sa.Column('id', sa.String(36), nullable=False, comment='Opaque UUID primary key'),
        sa.Column('content_id', sa.String(36), nullable=False, comment='Content being discussed'),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['content_id'], ['contents.id'],
            name='fk_chat_sessions_content_id_contents',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_chat_sessions'),
    )
    op.create_index('ix_chat_sessions_content_id', 'chat_sessions', ['content_id'])

    op.create_table(
        'chat_messages',
        sa.Column('id', sa.String(36), nullable=False, comment='Opaque UUID primary key'),
        sa.Column('session_id', sa.String(36), nullable=False, comment='Owning chat session'),
        sa.Column('role', sa.String(20), nullable=False, comment='user or assistant'),
        sa.Column('message', sa.Text(), nullable=False, comment='Message body'),
        sa.Column('references', JSON_BAG, nullable=True, comment='Citations attached to the message'),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['session_id'], ['chat_sessions.id'],
            name='fk_chat_messages_session_id_chat_sessions',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_chat_messages'),
    )
    op.create_index('ix_chat_messages_session_id', 'chat_messages', ['session_id'])
    # History is read oldest-first per session
    op.create_index('ix_chat_messages_session_id_created_at', 'chat_messages', ['session_id', 'created_at'])


def downgrade() -> None:
    """Drop the ingestion schema (children first)."""
    op.drop_index('ix_chat_messages_session_id_created_at', table_name='chat_messages')
    op.drop_index('ix_chat_messages_session_id', table_name='chat_messages')
    op.drop_table('chat_messages')

    op.drop_index('ix_chat_sessions_content_id', table_name='chat_sessions')
    op.drop_table('chat_sessions')

    op.drop_index('ix_content_triggers_content_id', table_name='content_triggers')
    op.drop_table('content_triggers')

    op.drop_table('processed_contents')

    op.drop_index('ix_contents_status', table_name='contents')
    op.drop_index('ix_contents_workspace_id', table_name='contents')
    op.drop_table('contents')

    op.drop_index('ix_workspaces_owner_id', table_name='workspaces')
    op.drop_table('workspaces')
