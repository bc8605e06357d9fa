"""draft trails

Revision ID: 0001_draft_trails
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_draft_trails'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - add draft_trails table."""
    op.create_table('draft_trails',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('reference_code', sa.String(length=255), nullable=False),
        sa.Column('owner_id', sa.String(length=255), nullable=False),
        sa.Column('owner_email', sa.String(length=320), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('is_paid', sa.Boolean(), nullable=False),
        sa.Column('paid_at', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.BigInteger(), nullable=False),
        sa.Column('expires_at', sa.BigInteger(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    with op.batch_alter_table('draft_trails', schema=None) as batch_op:
        batch_op.create_index('ix_draft_trails_reference_code', ['reference_code'], unique=True)
        batch_op.create_index('ix_draft_trails_owner_email', ['owner_email'], unique=False)
        batch_op.create_index('ix_draft_trails_expires_at', ['expires_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema - remove draft_trails table."""
    with op.batch_alter_table('draft_trails', schema=None) as batch_op:
        batch_op.drop_index('ix_draft_trails_expires_at')
        batch_op.drop_index('ix_draft_trails_owner_email')
        batch_op.drop_index('ix_draft_trails_reference_code')

    op.drop_table('draft_trails')
