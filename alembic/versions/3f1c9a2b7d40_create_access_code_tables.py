"""create_access_code_tables

Revision ID: 3f1c9a2b7d40
Revises:
Create Date: 2026-10-19 10:12:31.204118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '3f1c9a2b7d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'access_codes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(9), nullable=False, unique=True),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('used_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('is_long_term', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_retired', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('retired_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('max_uses >= 0', name='ck_access_codes_max_uses_non_negative'),
        sa.CheckConstraint('used_count >= 0', name='ck_access_codes_used_count_non_negative'),
        sa.CheckConstraint('max_uses = 0 OR used_count <= max_uses', name='ck_access_codes_within_quota'),
    )
    op.create_index('ix_access_codes_code', 'access_codes', ['code'])
    op.create_index('ix_access_codes_listing', 'access_codes', ['is_retired', 'created_at'])

    op.create_table(
        'redemption_attempts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('code_id', UUID(as_uuid=True), nullable=True),
        sa.Column('submitted_code', sa.String(64), nullable=True),
        sa.Column('subject_id', sa.String(255), nullable=False),
        sa.Column('requester_identity', sa.String(255), nullable=True),
        sa.Column('outcome', sa.String(16), nullable=False),
        sa.Column('failure_reason', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_redemption_attempts_created', 'redemption_attempts', ['created_at'])
    op.create_index('ix_redemption_attempts_code_created', 'redemption_attempts', ['code_id', 'created_at'])
    op.create_index('ix_redemption_attempts_subject', 'redemption_attempts', ['subject_id'])

    op.create_table(
        'templates',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('code_content', sa.Text(), nullable=True),
        sa.Column('requires_code', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table('templates')
    op.drop_index('ix_redemption_attempts_subject', table_name='redemption_attempts')
    op.drop_index('ix_redemption_attempts_code_created', table_name='redemption_attempts')
    op.drop_index('ix_redemption_attempts_created', table_name='redemption_attempts')
    op.drop_table('redemption_attempts')
    op.drop_index('ix_access_codes_listing', table_name='access_codes')
    op.drop_index('ix_access_codes_code', table_name='access_codes')
    op.drop_table('access_codes')
