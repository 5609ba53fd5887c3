"""
RAG Service: Application Entry Point

FastAPI application exposing ingestion and hybrid retrieval over the
PostgreSQL + pgvector schema.

Start locally:
    uvicorn app.main:app --host 0.0.0.0 --port 8001 --reload

Apply the schema first:
    alembic upgrade head
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.v1.rag import router as rag_router
from app.core.config import settings
from app.core.database import check_connection, dispose_engine
from app.core.logging import setup_logging
from app.services.embeddings import EmbeddingService

# Initialize logging before any log statements
setup_logging()
logger = logging.getLogger(__name__)


async def wait_for_db(retries: int = 10, delay: float = 1.0) -> bool:
    """
    Wait for PostgreSQL to become available.

    The database may come up after the container. Retries with a fixed
    delay between attempts.

    Returns:
        True if connection established, False if all retries exhausted.
    """
    for i in range(retries):
        try:
            await check_connection()
            logger.info("Database connection verified")
            return True
        except Exception as e:
            logger.warning("Waiting for Postgres (%d/%d)... Error: %s", i + 1, retries, e)
            await asyncio.sleep(delay)
    return False


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        1. Validate database connectivity (blocks startup on failure).
        2. Pre-load the local embedding model, if that provider is used.

    Shutdown:
        1. Dispose database engine.
    """
    logger.info("Starting %s...", settings.PROJECT_NAME)
    logger.info(
        "Embedding provider: %s (%s, dim=%d)",
        settings.EMBEDDING_PROVIDER,
        settings.EMBEDDING_MODEL,
        settings.EMBEDDING_DIMENSION,
    )

    if not await wait_for_db():
        logger.critical("Could not connect to Postgres. Shutting down.")
        raise RuntimeError("Database connection failed")

    if settings.EMBEDDING_PROVIDER == "local":
        logger.info("Pre-loading embedding model...")
        await asyncio.to_thread(EmbeddingService().warm_up)
        logger.info("Embedding model ready")

    yield

    await dispose_engine()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Document ingestion and hybrid (vector + full-text) retrieval.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(rag_router, prefix="/api/v1/rag", tags=["RAG"])


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check for load balancers and orchestrators."""
    return {
        "status": "ok",
        "service": "rag-platform",
        "environment": settings.ENVIRONMENT,
    }
