"""Session version column and runtime settings table

Revision ID: 002_session_version_and_settings
Revises: 001_initial
Create Date: 2026-10-18

- assessment_sessions.version: bumped on every stored transition
- portal_settings: runtime settings such as the admin notification email
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '002_session_version_and_settings'
down_revision: Union[str, None] = '001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'assessment_sessions',
        sa.Column('version', sa.Integer(), nullable=False, server_default='0')
    )

    # ── Portal Settings Table ─────────────────────────────────
    op.create_table(
        'portal_settings',
        sa.Column('key', sa.Text(), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False, server_default=''),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('portal_settings')
    op.drop_column('assessment_sessions', 'version')
