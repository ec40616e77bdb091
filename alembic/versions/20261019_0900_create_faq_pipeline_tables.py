"""create_faq_pipeline_tables

Revision ID: 20261019_0900_faq_tables
Revises: None
Create Date: 2026-10-19 09:00:00

Creates: email_accounts, emails, questions, faq_groups, question_groups, processing_jobs
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_0900_faq_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """
    Create the FAQ mining tables.
    """
    op.create_table(
        'email_accounts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email_address', sa.String(length=255), nullable=False),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='active', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_accounts_email_address', 'email_accounts', ['email_address'], unique=True)

    op.create_table(
        'emails',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('message_id', sa.String(length=255), nullable=False),
        sa.Column('thread_id', sa.String(length=255), nullable=True),
        sa.Column('sender_email', sa.String(length=255), nullable=False),
        sa.Column('sender_name', sa.String(length=255), nullable=True),
        sa.Column('recipients', sa.Text(), nullable=True),
        sa.Column('subject', sa.String(length=500), nullable=True),
        sa.Column('body_text', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('direction', sa.String(length=20), server_default='unknown', nullable=False),
        sa.Column('has_response', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('response_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('filtering_status', sa.String(length=20), server_default='pending', nullable=False),
        sa.Column('filtering_reason', sa.String(length=255), nullable=True),
        sa.Column('processed_for_faq', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['email_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'message_id', name='uq_emails_account_message'),
    )
    op.create_index('ix_emails_account_id', 'emails', ['account_id'])
    op.create_index('ix_emails_thread_id', 'emails', ['thread_id'])
    op.create_index('ix_emails_sender_email', 'emails', ['sender_email'])
    op.create_index('ix_emails_filtering_status', 'emails', ['filtering_status'])
    op.create_index(
        'ix_emails_account_status_processed',
        'emails',
        ['account_id', 'filtering_status', 'processed_for_faq']
    )

    op.create_table(
        'questions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source_email_id', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('quality_score', sa.Float(), nullable=True),
        sa.Column('embedding', sa.JSON(), nullable=True),
        sa.Column('sender_email', sa.String(length=255), nullable=True),
        sa.Column('sender_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['source_email_id'], ['emails.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('source_email_id', 'idempotency_key', name='uq_questions_email_key'),
    )
    op.create_index('ix_questions_source_email_id', 'questions', ['source_email_id'])

    op.create_table(
        'faq_groups',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('answer', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('question_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('avg_confidence', sa.Float(), server_default='0', nullable=False),
        sa.Column('max_confidence', sa.Float(), server_default='0', nullable=False),
        sa.Column('representative_question_id', sa.Integer(), nullable=True),
        sa.Column('centroid', sa.JSON(), nullable=True),
        sa.Column('sort_order', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_published', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('view_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('helpful_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('not_helpful_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['representative_question_id'], ['questions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_faq_groups_category', 'faq_groups', ['category'])

    op.create_table(
        'question_groups',
        sa.Column('question_id', sa.Integer(), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('similarity_score', sa.Float(), server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id']),
        sa.ForeignKeyConstraint(['group_id'], ['faq_groups.id']),
        sa.PrimaryKeyConstraint('question_id'),
    )
    op.create_index('ix_question_groups_group_id', 'question_groups', ['group_id'])

    op.create_table(
        'processing_jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='pending', nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('parameters', sa.JSON(), nullable=True),
        sa.Column('progress', sa.Integer(), server_default='0', nullable=False),
        sa.Column('total_items', sa.Integer(), server_default='0', nullable=False),
        sa.Column('processed_items', sa.Integer(), server_default='0', nullable=False),
        sa.Column('questions_found', sa.Integer(), server_default='0', nullable=False),
        sa.Column('errors_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('faq_groups_created', sa.Integer(), server_default='0', nullable=False),
        sa.Column('questions_grouped', sa.Integer(), server_default='0', nullable=False),
        sa.Column('cancel_requested', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['email_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('progress >= 0 AND progress <= 100', name='ck_processing_jobs_progress'),
    )
    op.create_index('ix_processing_jobs_status', 'processing_jobs', ['status'])
    op.create_index('ix_processing_jobs_account_id', 'processing_jobs', ['account_id'])
    op.create_index('ix_processing_jobs_account_status', 'processing_jobs', ['account_id', 'status'])


def downgrade() -> None:
    """
    Drop the FAQ mining tables.
    """
    op.drop_index('ix_processing_jobs_account_status', 'processing_jobs')
    op.drop_index('ix_processing_jobs_account_id', 'processing_jobs')
    op.drop_index('ix_processing_jobs_status', 'processing_jobs')
    op.drop_table('processing_jobs')

    op.drop_index('ix_question_groups_group_id', 'question_groups')
    op.drop_table('question_groups')

    op.drop_index('ix_faq_groups_category', 'faq_groups')
    op.drop_table('faq_groups')

    op.drop_index('ix_questions_source_email_id', 'questions')
    op.drop_table('questions')

    op.drop_index('ix_emails_account_status_processed', 'emails')
    op.drop_index('ix_emails_filtering_status', 'emails')
    op.drop_index('ix_emails_sender_email', 'emails')
    op.drop_index('ix_emails_thread_id', 'emails')
    op.drop_index('ix_emails_account_id', 'emails')
    op.drop_table('emails')

    op.drop_index('ix_email_accounts_email_address', 'email_accounts')
    op.drop_table('email_accounts')
