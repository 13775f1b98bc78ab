"""Access keys table

Revision ID: 001_access_keys
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_access_keys'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Timestamps are naive UTC; the application layer attaches the timezone
    op.create_table(
        'access_keys',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('label', sa.String(255), nullable=False, server_default='No Label'),
        sa.Column('device_binding', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_access_keys_expires', 'access_keys', ['expires_at'])
    op.create_index('idx_access_keys_created', 'access_keys', ['created_at'])


def downgrade() -> None:
    op.drop_index('idx_access_keys_created', table_name='access_keys')
    op.drop_index('idx_access_keys_expires', table_name='access_keys')
    op.drop_table('access_keys')
