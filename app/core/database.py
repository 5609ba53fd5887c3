"""
Database Layer

Async engine and sessions for the RAG service. The engine is built on
first use so that importing the app never opens a connection.

Every session that touches tenant data goes through ``bind_tenant`` (or
``tenant_session``), which sets ``app.tenant_id`` at the start of each
transaction for the row-level security policies.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings

logger = logging.getLogger(__name__)

# Created on first use
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

SET_TENANT_SQL = text("SELECT set_config('app.tenant_id', :tenant_id, true)")


def get_engine() -> AsyncEngine:
    """Return the shared engine, creating it from settings on first call."""
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = create_async_engine(
            settings.DATABASE_URL,
            echo=False,
            pool_size=settings.DB_POOL_SIZE,
            pool_pre_ping=True,
            connect_args=settings.connect_args,
        )
        logger.info(
            "Database engine created: %s@%s/%s",
            settings.POSTGRES_USER,
            settings.POSTGRES_HOST,
            settings.POSTGRES_DB,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the shared session factory bound to ``get_engine()``."""
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            expire_on_commit=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; route dependencies bind the tenant on top."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def bind_tenant(session: AsyncSession, tenant_id: uuid.UUID) -> None:
    """
    Bind a tenant to every transaction of ``session`` for row-level security.

    Each transaction starts with ``set_config('app.tenant_id', ..., true)``.
    The setting is transaction-local, so it never leaks to the next user of
    a pooled connection. Call before the session runs its first statement.
    """
    params = {"tenant_id": str(tenant_id)}

    @event.listens_for(session.sync_session, "after_begin")
    def _set_tenant(_session, _transaction, connection) -> None:
        connection.execute(SET_TENANT_SQL, params)

    session.info["tenant_id"] = tenant_id


@asynccontextmanager
async def tenant_session(tenant_id: uuid.UUID) -> AsyncIterator[AsyncSession]:
    """Open a session whose transactions are scoped to ``tenant_id``."""
    factory = get_session_factory()
    async with factory() as session:
        bind_tenant(session, tenant_id)
        yield session


async def check_connection() -> None:
    """Run ``SELECT 1``; raises if the database is unreachable."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def dispose_engine() -> None:
    """Dispose the engine at application shutdown."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine disposed")
