"""create messages table

Revision ID: 5d2f8e1c7a10
Revises:
Create Date: 2026-10-19 09:12:44.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5d2f8e1c7a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the durable messages table."""
    op.create_table(
        'messages',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('conversation_id', sa.Text(), nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "type IN ('user', 'ai', 'system', 'plan_update')",
            name='messages_type_check'
        ),
        sa.CheckConstraint("length(trim(content)) > 0", name='messages_content_check')
    )
    # find_by_user / find_by_conversation read the most recent rows first
    op.create_index('idx_messages_user_created', 'messages', ['user_id', sa.text('created_at DESC')])
    op.create_index('idx_messages_conversation_created', 'messages', ['conversation_id', sa.text('created_at DESC')])


def downgrade() -> None:
    """Drop the messages table."""
    op.drop_index('idx_messages_conversation_created', table_name='messages')
    op.drop_index('idx_messages_user_created', table_name='messages')
    op.drop_table('messages')
