"""Count permanent delivery failures separately from all attempts.

Revision ID: 002
Revises: 001
Create Date: 2026-10-17

- scheduled_notifications.permanent_failures: only permanent failures count
  towards the undeliverable cap; transient ones stay in attempts
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'scheduled_notifications',
        sa.Column('permanent_failures', sa.Integer(), nullable=False, server_default='0'),
    )


def downgrade() -> None:
    op.drop_column('scheduled_notifications', 'permanent_failures')
