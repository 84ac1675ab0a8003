"""Track entity extraction on news items.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

Adds:
- entities_extracted_at to news_items so each headline is sent to the
  entity extractor once

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
        'news_items',
        sa.Column('entities_extracted_at', sa.DateTime(), nullable=True)
    )
    op.create_index(
        'idx_news_extraction_pending',
        'news_items',
        ['entities_extracted_at', 'published_at'],
    )


def downgrade() -> None:
    op.drop_index('idx_news_extraction_pending', table_name='news_items')
    op.drop_column('news_items', 'entities_extracted_at')
