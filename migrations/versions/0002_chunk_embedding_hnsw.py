"""hnsw index on chunks.embedding

Revision ID: 0002_hnsw
Revises: 0001_base
Create Date: 2026-09-28 10:05:00.000000

"""

from collections.abc import Sequence

from alembic import op

from app.models.ddl import DROP_HNSW_INDEX, HNSW_INDEX

# revision identifiers, used by Alembic.
revision: str = "0002_hnsw"
down_revision: str | Sequence[str] | None = "0001_base"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """HNSW cosine index for approximate nearest neighbour search."""
    op.execute(HNSW_INDEX)


def downgrade() -> None:
    op.execute(DROP_HNSW_INDEX)
