"""tenant isolation policies

Revision ID: 0003_rls
Revises: 0002_hnsw
Create Date: 2026-10-02 09:30:00.000000

"""

from collections.abc import Sequence

from alembic import op

from app.models.ddl import drop_tenant_policy_statements, tenant_policy_statements

# revision identifiers, used by Alembic.
revision: str = "0003_rls"
down_revision: str | Sequence[str] | None = "0002_hnsw"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """
    Enforce tenant scoping for app_user.

    app_user only sees rows whose tenant_id matches the transaction-local
    ``app.tenant_id`` setting; app_admin sees everything. Table owners
    bypass RLS unless FORCE ROW LEVEL SECURITY is set.
    """
    for statement in tenant_policy_statements():
        op.execute(statement)


def downgrade() -> None:
    for statement in drop_tenant_policy_statements():
        op.execute(statement)
