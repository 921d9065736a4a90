"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create api_keys table
    op.create_table(
        'api_keys',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('key_hash', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('key_prefix', sa.String(12), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Create assets table (rows are written by the upload service)
    op.create_table(
        'assets',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column('filename', sa.Text(), nullable=False),
        sa.Column('file_type', sa.String(255), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('storage_path', sa.Text(), nullable=False, unique=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Create ai_jobs table
    op.create_table(
        'ai_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column('asset_id', postgresql.UUID(as_uuid=False), sa.ForeignKey('assets.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('job_type', sa.Enum('translate', name='job_type'), nullable=False, server_default='translate'),
        sa.Column('status', sa.Enum('pending', 'processing', 'completed', 'failed', name='job_status'), nullable=False, server_default='pending'),
        sa.Column('config', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Create ai_results table; one result per job
    op.create_table(
        'ai_results',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('job_id', postgresql.UUID(as_uuid=False), sa.ForeignKey('ai_jobs.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('result_type', sa.String(50), nullable=False, server_default='translation'),
        sa.Column('result_data', postgresql.JSONB(), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Create indexes
    op.create_index('ix_ai_jobs_status', 'ai_jobs', ['status'])
    op.create_index('ix_ai_jobs_created_at', 'ai_jobs', ['created_at'])
    # The worker's pending scan
    op.create_index(
        'ix_ai_jobs_pending',
        'ai_jobs',
        ['created_at'],
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index('ix_ai_jobs_pending')
    op.drop_index('ix_ai_jobs_created_at')
    op.drop_index('ix_ai_jobs_status')
    op.drop_table('ai_results')
    op.drop_table('ai_jobs')
    op.drop_table('assets')
    op.drop_table('api_keys')
    op.execute('DROP TYPE IF EXISTS job_status')
    op.execute('DROP TYPE IF EXISTS job_type')
