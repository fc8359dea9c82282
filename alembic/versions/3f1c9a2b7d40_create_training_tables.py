"""Create training, verification and fine-tuning tables

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table('training_documents',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('file_path', sa.String(), nullable=False),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('file_url', sa.String(), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('file_type', sa.String(), nullable=True),
        sa.Column('document_type', sa.String(), nullable=False),
        sa.Column('upload_date', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('processing_status', sa.String(), nullable=False, comment='pending | processing | completed | failed'),
        sa.Column('processed_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('raw_extraction', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('verified_extraction', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('extraction_confidence', sa.Float(), nullable=True),
        sa.Column('verification_status', sa.String(), nullable=False, comment='unverified | in_review | verified | rejected'),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verified_by', sa.String(), nullable=True),
        sa.Column('verified_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('verification_notes', sa.Text(), nullable=True),
        sa.Column('requires_recheck', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('dataset_split', sa.String(), nullable=False, server_default='train', comment='train | validation | test'),
        sa.Column('training_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('include_in_training', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('quality_score', sa.Float(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1', comment='Optimistic concurrency counter'),
        sa.Column('created_by', sa.String(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_training_documents_document_type', 'training_documents', ['document_type'])
    op.create_index(
        'ix_training_documents_training_set',
        'training_documents',
        ['document_type', 'is_verified', 'include_in_training', 'dataset_split'],
    )

    op.create_table('verification_edits',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('training_document_id', sa.UUID(), nullable=False),
        sa.Column('editor_id', sa.String(), nullable=False),
        sa.Column('before_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('after_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('changes_made', sa.Text(), nullable=True),
        sa.Column('verification_action', sa.String(), nullable=False, comment='verify | reject'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('edit_timestamp', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['training_document_id'], ['training_documents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_verification_edits_training_document_id', 'verification_edits', ['training_document_id'])

    op.create_table('training_metrics',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('document_type', sa.String(), nullable=False),
        sa.Column('learning_insights', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('last_export_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_training_date', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('training_runs', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type'),
    )

    op.create_table('fine_tuning_jobs',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('document_type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending', comment='pending | uploading | running | succeeded | failed | cancelled'),
        sa.Column('base_model', sa.String(), nullable=False),
        sa.Column('hyperparameters', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('openai_job_id', sa.String(), nullable=True),
        sa.Column('openai_file_id', sa.String(), nullable=True),
        sa.Column('openai_validation_file_id', sa.String(), nullable=True),
        sa.Column('training_examples_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('validation_examples_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('training_file_url', sa.String(), nullable=True),
        sa.Column('validation_file_url', sa.String(), nullable=True),
        sa.Column('fine_tuned_model_id', sa.String(), nullable=True),
        sa.Column('trained_tokens', sa.Integer(), nullable=True),
        sa.Column('metrics', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('triggered_by', sa.String(), nullable=False, server_default='manual'),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('failed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('openai_job_id'),
    )
    op.create_index('ix_fine_tuning_jobs_document_type', 'fine_tuning_jobs', ['document_type'])

    op.create_table('model_versions',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('document_type', sa.String(), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('model_id', sa.String(), nullable=False),
        sa.Column('model_type', sa.String(), nullable=False, server_default='fine_tuned', comment='base | fine_tuned'),
        sa.Column('fine_tuning_job_id', sa.UUID(), nullable=True),
        sa.Column('deployment_status', sa.String(), nullable=False, server_default='inactive', comment='inactive | testing | active | archived'),
        sa.Column('deployed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('traffic_percentage', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['fine_tuning_job_id'], ['fine_tuning_jobs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'version_number', name='uq_model_versions_type_number'),
    )
    op.create_index('ix_model_versions_document_type', 'model_versions', ['document_type'])
    # At most one active version per document type
    op.create_index(
        'uq_model_versions_one_active',
        'model_versions',
        ['document_type'],
        unique=True,
        postgresql_where=sa.text("deployment_status = 'active'"),
    )

    op.create_table('training_triggers',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('document_type', sa.String(), nullable=False),
        sa.Column('trigger_interval', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('next_trigger_at', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('min_documents_required', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('auto_trigger_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_trigger_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_triggered_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('last_job_id', sa.UUID(), nullable=True),
        sa.Column('total_triggers', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('training_triggers')
    op.drop_index('uq_model_versions_one_active', table_name='model_versions')
    op.drop_index('ix_model_versions_document_type', table_name='model_versions')
    op.drop_table('model_versions')
    op.drop_index('ix_fine_tuning_jobs_document_type', table_name='fine_tuning_jobs')
    op.drop_table('fine_tuning_jobs')
    op.drop_table('training_metrics')
    op.drop_index('ix_verification_edits_training_document_id', table_name='verification_edits')
    op.drop_table('verification_edits')
    op.drop_index('ix_training_documents_training_set', table_name='training_documents')
    op.drop_index('ix_training_documents_document_type', table_name='training_documents')
    op.drop_table('training_documents')
