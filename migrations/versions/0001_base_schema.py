"""base schema: sources, documents, chunks

Revision ID: 0001_base
Revises:
Create Date: 2026-09-28 10:00:00.000000

"""

from collections.abc import Sequence

from alembic import op

from app.core.config import settings
from app.models.ddl import DROP_BASE_SCHEMA, base_schema_statements

# revision identifiers, used by Alembic.
revision: str = "0001_base"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create extensions, roles, tables, indexes, tsvector triggers and RLS."""
    for statement in base_schema_statements(settings.EMBEDDING_DIMENSION):
        op.execute(statement)


def downgrade() -> None:
    """Drop tables and trigger functions (extensions and roles are kept)."""
    for statement in DROP_BASE_SCHEMA:
        op.execute(statement)
