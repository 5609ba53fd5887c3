"""
Schema DDL

Raw PostgreSQL statements behind the Alembic revisions. Kept as data so
the same schema can be applied by ``alembic upgrade head`` or printed for
``psql`` (``python -m scripts.print_schema | psql "$DSN"``).

Every statement is guarded (``IF NOT EXISTS`` / ``OR REPLACE`` /
drop-then-create) so the whole script is safe to re-run.

Statements are kept separate because asyncpg prepares each one and does
not accept several commands in one call.
"""

from __future__ import annotations

from typing import Final

from app.models.orm import CHUNK_ORDINAL_CONSTRAINT, SOURCE_HASH_CONSTRAINT

TENANT_SETTING: Final[str] = "app.tenant_id"
RLS_TABLES: Final[tuple[str, ...]] = ("sources", "documents", "chunks")

EXTENSIONS: Final[tuple[str, ...]] = (
    "vector",
    "pg_trgm",
    "unaccent",
    "pg_stat_statements",
)

_ROLE_TEMPLATE = """\
DO $$
BEGIN
  IF NOT EXISTS (SELECT 1 FROM pg_roles WHERE rolname = '{role}') THEN
    CREATE ROLE {role} NOLOGIN;
  END IF;
END $$"""

_GRANT_CONNECT = """\
DO $$
BEGIN
  EXECUTE format(
    'GRANT CONNECT ON DATABASE %I TO app_admin, app_user',
    current_database()
  );
END $$"""

_SOURCES_TABLE = f"""\
CREATE TABLE IF NOT EXISTS sources (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    doc_type TEXT,
    mime_type TEXT,
    hash TEXT NOT NULL,
    file_size_bytes BIGINT,
    version TEXT,
    tenant_id UUID NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    ingested_at TIMESTAMPTZ,
    ingestion_status TEXT,
    ingestion_error TEXT,
    metadata JSONB DEFAULT '{{}}'::JSONB,
    CONSTRAINT {SOURCE_HASH_CONSTRAINT} UNIQUE (hash)
)"""

_DOCUMENTS_TABLE = """\
CREATE TABLE IF NOT EXISTS documents (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    source_id UUID NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    title TEXT,
    full_text TEXT,
    excerpt TEXT,
    classification TEXT,
    document_type TEXT,
    effective_date DATE,
    expiration_date DATE,
    version TEXT,
    status TEXT,
    tenant_id UUID NOT NULL,
    author TEXT,
    department TEXT,
    owner_email TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    published_at TIMESTAMPTZ,
    metadata JSONB DEFAULT '{}'::JSONB,
    search_vector TSVECTOR
)"""

_CHUNKS_TABLE_TEMPLATE = """\
CREATE TABLE IF NOT EXISTS chunks (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    document_id UUID NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    page_number INTEGER,
    section_heading TEXT,
    content TEXT NOT NULL,
    token_count INTEGER,
    embedding VECTOR({dimension}),
    tenant_id UUID NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    metadata JSONB DEFAULT '{{}}'::JSONB,
    search_vector TSVECTOR,
    CONSTRAINT {constraint} UNIQUE (document_id, chunk_index)
)"""

INDEXES: Final[tuple[str, ...]] = (
    # sources
    "CREATE INDEX IF NOT EXISTS idx_sources_tenant_id ON sources(tenant_id)",
    "CREATE INDEX IF NOT EXISTS idx_sources_hash ON sources(hash)",
    "CREATE INDEX IF NOT EXISTS idx_sources_created_at ON sources(created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_sources_ingestion_status "
    "ON sources(ingestion_status) WHERE ingestion_status IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_sources_metadata ON sources USING gin(metadata)",
    # documents
    "CREATE INDEX IF NOT EXISTS idx_documents_source_id ON documents(source_id)",
    "CREATE INDEX IF NOT EXISTS idx_documents_tenant_id ON documents(tenant_id)",
    "CREATE INDEX IF NOT EXISTS idx_documents_created_at "
    "ON documents(created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_documents_effective_date "
    "ON documents(effective_date DESC)",
    "CREATE INDEX IF NOT EXISTS idx_documents_classification "
    "ON documents(classification)",
    "CREATE INDEX IF NOT EXISTS idx_documents_document_type "
    "ON documents(document_type)",
    "CREATE INDEX IF NOT EXISTS idx_documents_status ON documents(status)",
    "CREATE INDEX IF NOT EXISTS idx_documents_metadata "
    "ON documents USING gin(metadata)",
    "CREATE INDEX IF NOT EXISTS idx_documents_search_vector "
    "ON documents USING gin(search_vector)",
    "CREATE INDEX IF NOT EXISTS idx_documents_title_trgm "
    "ON documents USING gin(title gin_trgm_ops)",
    # chunks
    "CREATE INDEX IF NOT EXISTS idx_chunks_document_id ON chunks(document_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_tenant_id ON chunks(tenant_id)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_created_at ON chunks(created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_metadata ON chunks USING gin(metadata)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_search_vector "
    "ON chunks USING gin(search_vector)",
    "CREATE INDEX IF NOT EXISTS idx_chunks_content_trgm "
    "ON chunks USING gin(content gin_trgm_ops)",
)

DOCUMENTS_SEARCH_VECTOR_FUNCTION: Final[str] = """\
CREATE OR REPLACE FUNCTION documents_search_vector_update() RETURNS trigger AS $$
BEGIN
  NEW.search_vector :=
    setweight(to_tsvector('english', COALESCE(NEW.title, '')), 'A') ||
    setweight(to_tsvector('english', COALESCE(NEW.excerpt, '')), 'B') ||
    setweight(to_tsvector('english', COALESCE(NEW.full_text, '')), 'C');
  RETURN NEW;
END
$$ LANGUAGE plpgsql"""

CHUNKS_SEARCH_VECTOR_FUNCTION: Final[str] = """\
CREATE OR REPLACE FUNCTION chunks_search_vector_update() RETURNS trigger AS $$
BEGIN
  NEW.search_vector :=
    setweight(to_tsvector('english', COALESCE(NEW.section_heading, '')), 'B') ||
    setweight(to_tsvector('english', COALESCE(NEW.content, '')), 'C');
  RETURN NEW;
END
$$ LANGUAGE plpgsql"""

TRIGGERS: Final[tuple[str, ...]] = (
    DOCUMENTS_SEARCH_VECTOR_FUNCTION,
    "DROP TRIGGER IF EXISTS tsvector_update ON documents",
    "CREATE TRIGGER tsvector_update BEFORE INSERT OR UPDATE ON documents "
    "FOR EACH ROW EXECUTE FUNCTION documents_search_vector_update()",
    CHUNKS_SEARCH_VECTOR_FUNCTION,
    "DROP TRIGGER IF EXISTS tsvector_update ON chunks",
    "CREATE TRIGGER tsvector_update BEFORE INSERT OR UPDATE ON chunks "
    "FOR EACH ROW EXECUTE FUNCTION chunks_search_vector_update()",
)


def base_schema_statements(embedding_dimension: int) -> list[str]:
    """
    Statements of the base migration, in execution order.

    Args:
        embedding_dimension: Size of ``chunks.embedding``. Must match the
            embedding model's output (1536 for text-embedding-3-small).
    """
    if embedding_dimension < 1:
        raise ValueError(f"embedding_dimension must be positive: {embedding_dimension}")

    statements = [f"CREATE EXTENSION IF NOT EXISTS {ext}" for ext in EXTENSIONS]
    statements += [_ROLE_TEMPLATE.format(role=role) for role in ("app_admin", "app_user")]
    statements += [
        _GRANT_CONNECT,
        "GRANT USAGE ON SCHEMA public TO app_admin, app_user",
        _SOURCES_TABLE,
        _DOCUMENTS_TABLE,
        _CHUNKS_TABLE_TEMPLATE.format(
            dimension=embedding_dimension,
            constraint=CHUNK_ORDINAL_CONSTRAINT,
        ),
    ]
    statements += list(INDEXES)
    statements += list(TRIGGERS)
    statements += [f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY" for table in RLS_TABLES]
    statements += [
        "GRANT SELECT, INSERT, UPDATE, DELETE ON sources, documents, chunks "
        f"TO {role}"
        for role in ("app_admin", "app_user")
    ]
    return statements


DROP_BASE_SCHEMA: Final[tuple[str, ...]] = (
    "DROP TABLE IF EXISTS chunks",
    "DROP TABLE IF EXISTS documents",
    "DROP TABLE IF EXISTS sources",
    "DROP FUNCTION IF EXISTS chunks_search_vector_update()",
    "DROP FUNCTION IF EXISTS documents_search_vector_update()",
)

# HNSW trades build time for recall; cosine ops match the `<=>` queries
HNSW_INDEX: Final[str] = (
    "CREATE INDEX IF NOT EXISTS idx_chunks_embedding_hnsw "
    "ON chunks USING hnsw (embedding vector_cosine_ops) "
    "WITH (m = 16, ef_construction = 64)"
)
DROP_HNSW_INDEX: Final[str] = "DROP INDEX IF EXISTS idx_chunks_embedding_hnsw"


def tenant_policy_statements() -> list[str]:
    """``admin_all`` for app_admin, ``tenant_isolation`` for app_user."""
    statements: list[str] = []
    for table in RLS_TABLES:
        statements += [
            f"DROP POLICY IF EXISTS admin_all ON {table}",
            f"CREATE POLICY admin_all ON {table} FOR ALL TO app_admin USING (true)",
            f"DROP POLICY IF EXISTS tenant_isolation ON {table}",
            f"CREATE POLICY tenant_isolation ON {table} FOR ALL TO app_user "
            f"USING (tenant_id::TEXT = current_setting('{TENANT_SETTING}', true)) "
            f"WITH CHECK (tenant_id::TEXT = current_setting('{TENANT_SETTING}', true))",
        ]
    return statements


def drop_tenant_policy_statements() -> list[str]:
    statements: list[str] = []
    for table in RLS_TABLES:
        statements += [
            f"DROP POLICY IF EXISTS tenant_isolation ON {table}",
            f"DROP POLICY IF EXISTS admin_all ON {table}",
        ]
    return statements


def render_script(statements: list[str]) -> str:
    """Join statements into one script runnable with ``psql -f``."""
    return ";\n\n".join(statements) + ";\n"
