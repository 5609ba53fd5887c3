"""
Schema Definition Unit Tests

Checks the DDL behind the migrations and the ORM mapping against each
other: uniqueness constraints, cascades, tsvector triggers, vector
dimension and tenant policies. No database required.
"""

from __future__ import annotations

import pytest
from sqlalchemy import UniqueConstraint

from app.models.ddl import (
    HNSW_INDEX,
    RLS_TABLES,
    TENANT_SETTING,
    base_schema_statements,
    drop_tenant_policy_statements,
    render_script,
    tenant_policy_statements,
)
from app.models.orm import (
    CHUNK_ORDINAL_CONSTRAINT,
    EMBEDDING_DIMENSION,
    SOURCE_HASH_CONSTRAINT,
    ChunkRecord,
    DocumentRecord,
    SourceRecord,
)
from scripts.print_schema import build_statements


@pytest.fixture(scope="module")
def statements() -> list[str]:
    return base_schema_statements(1536)


def _find(statements: list[str], prefix: str) -> str:
    matches = [s for s in statements if s.startswith(prefix)]
    assert len(matches) == 1, f"expected one statement starting with {prefix!r}"
    return matches[0]


# ---------------------------------------------------------------------------
# Base migration DDL
# ---------------------------------------------------------------------------


class TestBaseSchema:
    def test_extensions_first(self, statements: list[str]) -> None:
        assert statements[:4] == [
            "CREATE EXTENSION IF NOT EXISTS vector",
            "CREATE EXTENSION IF NOT EXISTS pg_trgm",
            "CREATE EXTENSION IF NOT EXISTS unaccent",
            "CREATE EXTENSION IF NOT EXISTS pg_stat_statements",
        ]

    def test_tables_in_dependency_order(self, statements: list[str]) -> None:
        order = [
            i
            for i, s in enumerate(statements)
            if s.startswith("CREATE TABLE IF NOT EXISTS")
        ]
        names = [statements[i].split()[5] for i in order]

        assert names == ["sources", "documents", "chunks"]

    def test_source_hash_is_unique(self, statements: list[str]) -> None:
        sources = _find(statements, "CREATE TABLE IF NOT EXISTS sources")

        assert f"CONSTRAINT {SOURCE_HASH_CONSTRAINT} UNIQUE (hash)" in sources
        assert "'{}'::JSONB" in sources

    def test_chunk_ordinal_is_unique(self, statements: list[str]) -> None:
        chunks = _find(statements, "CREATE TABLE IF NOT EXISTS chunks")

        assert (
            f"CONSTRAINT {CHUNK_ORDINAL_CONSTRAINT} UNIQUE (document_id, chunk_index)"
            in chunks
        )

    def test_foreign_keys_cascade(self, statements: list[str]) -> None:
        documents = _find(statements, "CREATE TABLE IF NOT EXISTS documents")
        chunks = _find(statements, "CREATE TABLE IF NOT EXISTS chunks")

        assert "REFERENCES sources(id) ON DELETE CASCADE" in documents
        assert "REFERENCES documents(id) ON DELETE CASCADE" in chunks

    def test_embedding_dimension(self) -> None:
        chunks = _find(base_schema_statements(384), "CREATE TABLE IF NOT EXISTS chunks")

        assert "embedding VECTOR(384)" in chunks

    def test_invalid_dimension(self) -> None:
        with pytest.raises(ValueError, match="embedding_dimension"):
            base_schema_statements(0)

    def test_triggers_recreated_idempotently(self, statements: list[str]) -> None:
        for table in ("documents", "chunks"):
            drop = statements.index(f"DROP TRIGGER IF EXISTS tsvector_update ON {table}")
            create = next(
                i
                for i, s in enumerate(statements)
                if s.startswith("CREATE TRIGGER tsvector_update")
                and f"ON {table} " in s
            )
            assert drop < create

    def test_trigger_functions_weight_fields(self, statements: list[str]) -> None:
        documents_fn = _find(
            statements,
            "CREATE OR REPLACE FUNCTION documents_search_vector_update()",
        )

        assert "COALESCE(NEW.title, '')), 'A'" in documents_fn
        assert "COALESCE(NEW.excerpt, '')), 'B'" in documents_fn
        assert "COALESCE(NEW.full_text, '')), 'C'" in documents_fn

    def test_row_level_security_enabled(self, statements: list[str]) -> None:
        for table in RLS_TABLES:
            assert f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY" in statements

    def test_one_command_per_statement(self, statements: list[str]) -> None:
        """asyncpg prepares statements one by one."""
        for statement in statements:
            if "$$" not in statement:
                assert ";" not in statement, statement


# ---------------------------------------------------------------------------
# Later migrations and script rendering
# ---------------------------------------------------------------------------


class TestPoliciesAndScript:
    def test_tenant_isolation_policy(self) -> None:
        policies = tenant_policy_statements()
        isolation = [s for s in policies if "CREATE POLICY tenant_isolation" in s]

        assert len(isolation) == len(RLS_TABLES)
        for statement in isolation:
            assert f"current_setting('{TENANT_SETTING}', true)" in statement
            assert "WITH CHECK" in statement

    def test_drop_policies_cover_every_table(self) -> None:
        drops = drop_tenant_policy_statements()

        assert len(drops) == 2 * len(RLS_TABLES)

    def test_hnsw_uses_cosine_ops(self) -> None:
        assert "USING hnsw (embedding vector_cosine_ops)" in HNSW_INDEX

    def test_render_script(self) -> None:
        assert render_script(["SELECT 1", "SELECT 2"]) == "SELECT 1;\n\nSELECT 2;\n"

    def test_print_schema_covers_all_migrations(self) -> None:
        full = build_statements(1536)
        bare = build_statements(1536, hnsw=False, rls=False)

        assert HNSW_INDEX in full
        assert HNSW_INDEX not in bare
        assert len(full) == len(bare) + 1 + len(tenant_policy_statements())


# ---------------------------------------------------------------------------
# ORM mapping
# ---------------------------------------------------------------------------


def _unique_constraints(model) -> dict[str, tuple[str, ...]]:
    return {
        c.name: tuple(col.name for col in c.columns)
        for c in model.__table__.constraints
        if isinstance(c, UniqueConstraint)
    }


class TestOrmMapping:
    def test_unique_constraints_match_ddl(self) -> None:
        assert _unique_constraints(SourceRecord) == {SOURCE_HASH_CONSTRAINT: ("hash",)}
        assert _unique_constraints(ChunkRecord) == {
            CHUNK_ORDINAL_CONSTRAINT: ("document_id", "chunk_index")
        }

    @pytest.mark.parametrize(
        ("model", "column", "target"),
        [
            (DocumentRecord, "source_id", "sources.id"),
            (ChunkRecord, "document_id", "documents.id"),
        ],
    )
    def test_foreign_keys_cascade(self, model, column: str, target: str) -> None:
        (fk,) = model.__table__.c[column].foreign_keys

        assert fk.target_fullname == target
        assert fk.ondelete == "CASCADE"

    def test_metadata_column_name(self) -> None:
        for model in (SourceRecord, DocumentRecord, ChunkRecord):
            assert "metadata" in model.__table__.c

    def test_embedding_dimension(self) -> None:
        assert ChunkRecord.__table__.c.embedding.type.dim == EMBEDDING_DIMENSION

    def test_tenant_id_required(self) -> None:
        for model in (SourceRecord, DocumentRecord, ChunkRecord):
            assert model.__table__.c.tenant_id.nullable is False
