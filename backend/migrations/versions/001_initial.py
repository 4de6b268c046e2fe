"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

Creates all database tables for the Compliance Portal:
- staff_members: Staff registry with teaching intention and soft delete
- questions: Assessment question bank
- test_results: Append-only result history per staff member
- assessment_sessions: In-progress and closed assessment sessions
- mail_outbox: Outbound email trigger queue

Also creates indexes for common query patterns.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── Staff Members Table ───────────────────────────────────
    op.create_table(
        'staff_members',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('first_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('last_name', sa.Text(), nullable=False, server_default=''),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('grade_taught', sa.Text(), nullable=True),
        sa.Column('intends_to_continue', sa.Boolean(), nullable=False,
                  server_default=sa.true()),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Questions Table ───────────────────────────────────────
    op.create_table(
        'questions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('options', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('correct_index', sa.Integer(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Test Results Table ────────────────────────────────────
    op.create_table(
        'test_results',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('staff_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('staff_members.id'), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('passed', sa.Boolean(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('correct_answers', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('question_details', postgresql.JSONB(), nullable=False, server_default='[]'),
    )

    op.create_index('ix_test_results_staff_id', 'test_results', ['staff_id'])
    op.create_index('ix_test_results_date', 'test_results', ['date'])

    # ── Assessment Sessions Table ─────────────────────────────
    op.create_table(
        'assessment_sessions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('staff_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('staff_members.id'), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='IN_PROGRESS'),
        sa.Column('state', postgresql.JSONB(), nullable=False, server_default='{}'),
        sa.Column('started_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('result_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('test_results.id'), nullable=True),
    )

    op.create_index('ix_assessment_sessions_staff_id', 'assessment_sessions', ['staff_id'])
    op.create_index('ix_assessment_sessions_status', 'assessment_sessions', ['status'])

    # ── Mail Outbox Table ─────────────────────────────────────
    op.create_table(
        'mail_outbox',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('to_address', sa.Text(), nullable=False),
        sa.Column('subject', sa.Text(), nullable=False),
        sa.Column('html', sa.Text(), nullable=False),
        sa.Column('kind', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_index('ix_mail_outbox_kind', 'mail_outbox', ['kind'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_index('ix_mail_outbox_kind', table_name='mail_outbox')
    op.drop_table('mail_outbox')
    op.drop_index('ix_assessment_sessions_status', table_name='assessment_sessions')
    op.drop_index('ix_assessment_sessions_staff_id', table_name='assessment_sessions')
    op.drop_table('assessment_sessions')
    op.drop_index('ix_test_results_date', table_name='test_results')
    op.drop_index('ix_test_results_staff_id', table_name='test_results')
    op.drop_table('test_results')
    op.drop_table('questions')
    op.drop_table('staff_members')
