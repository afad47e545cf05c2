# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Catalog Database (PostgreSQL)

One database holds the skill catalog, discovery bookkeeping, add requests and
the job queue. The sync engine serves the repository and queue (short
transactions through core.session_manager); the async engine serves the
FastAPI lifespan and health check.

Engines are created at import but connect lazily, so importing models never
needs a running server.
"""
import logging
import os
import time
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from config import settings

logger = logging.getLogger(__name__)

SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("SLOW_QUERY_THRESHOLD", "2.0"))

# Sized for the worker pool plus API requests
POOL_OPTIONS = {
    "pool_size": int(os.getenv("DB_POOL_SIZE", str(settings.job_concurrency + 5))),
    "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
    "pool_pre_ping": True,
    "pool_recycle": 1800,
    "echo": SQL_ECHO,
}

CATALOG_TABLES = (
    "skills",
    "categories",
    "skill_categories",
    "discovered_repos",
    "curated_lists",
    "add_requests",
    "indexing_jobs",
)


def async_url(url: str) -> str:
    """postgresql:// (or postgres://) URL rewritten for the asyncpg driver."""
    for prefix in ("postgresql+psycopg2://", "postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


engine = create_engine(settings.database_url, poolclass=QueuePool, **POOL_OPTIONS)
async_engine = create_async_engine(async_url(settings.database_url), **POOL_OPTIONS)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


@event.listens_for(engine, "connect")
def _use_utc(dbapi_conn, connection_record):
    """Session timestamps in UTC."""
    with dbapi_conn.cursor() as cursor:
        cursor.execute("SET timezone='UTC'")


@event.listens_for(engine, "before_cursor_execute")
def _start_timer(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(engine, "after_cursor_execute")
def _log_slow_query(conn, cursor, statement, parameters, context, executemany):
    elapsed = time.perf_counter() - conn.info["query_start_time"].pop()
    if elapsed > SLOW_QUERY_THRESHOLD:
        logger.warning(f"Slow catalog query ({elapsed:.2f}s): {statement[:200]}")


def get_db() -> Generator[Session, None, None]:
    """Session per request, for FastAPI dependencies."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =============================================================================
# Schema
# =============================================================================

def init_db():
    """Create any missing catalog tables (sync; used by the CLI worker)."""
    import models  # noqa: F401 - registers tables on Base

    Base.metadata.create_all(bind=engine)
    logger.info(f"Catalog schema ready ({len(Base.metadata.tables)} tables)")


async def async_init_db():
    """Create any missing catalog tables from the API lifespan."""
    import models  # noqa: F401

    async with async_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.info(f"Catalog schema ready ({len(Base.metadata.tables)} tables, async)")


def _missing_tables(sync_connection) -> list:
    existing = set(inspect(sync_connection).get_table_names())
    return [name for name in CATALOG_TABLES if name not in existing]


async def check_db_health() -> Dict[str, Any]:
    """
    Connectivity, schema and pool status of the catalog database.

    Returns "unhealthy" when the server is unreachable and "degraded" when
    it answers but catalog tables are missing.
    """
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            missing = await conn.run_sync(_missing_tables)
    except Exception as e:
        logger.error(f"Catalog database health check failed: {e}")
        return {"status": "unhealthy", "database": "postgresql", "error": str(e)}

    pool = async_engine.pool
    return {
        "status": "degraded" if missing else "healthy",
        "database": "postgresql",
        "missing_tables": missing,
        "pool": {
            "size": pool.size(),
            "checked_in": pool.checkedin(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
        },
    }


async def dispose_engines():
    """Close both connection pools on shutdown."""
    await async_engine.dispose()
    engine.dispose()
    logger.info("Catalog database connections closed")


__all__ = [
    "Base",
    "engine",
    "async_engine",
    "SessionLocal",
    "get_db",
    "init_db",
    "async_init_db",
    "check_db_health",
    "dispose_engines",
    "async_url",
]
