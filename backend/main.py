# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
SkillHub Indexer - FastAPI Backend
Operator API plus the job workers and recurring schedule
"""
import sys
import asyncio

# Fix for Windows: asyncpg requires SelectorEventLoop, not ProactorEventLoop
if sys.platform == 'win32':
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from fastapi import FastAPI
from contextlib import asynccontextmanager
import uvicorn
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Import settings for environment configuration
from config import settings

# Configure logging based on environment
log_level = logging.DEBUG if settings.debug else logging.INFO
logging.basicConfig(
    level=log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)
logger.info(f"Starting in {settings.environment} mode (debug={settings.debug})")

# Import database setup
from db.database import async_init_db, dispose_engines
import models  # noqa: F401 - registers tables with Base

import core.task_handlers  # noqa: F401 - registers job handlers via decorators
from core.exceptions import ConfigurationError
from core.task_queue import JobQueue
from services.catalog_repository import SqlCatalogRepository
from services.indexer_context import IndexerContext
from services.scheduler_service import RecurringSchedule


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting SkillHub Indexer API...")

    # Catalog database is required; abort startup without it
    try:
        await async_init_db()
        repository = SqlCatalogRepository()
        repository.ensure_categories()
        logger.info("PostgreSQL database initialized successfully")
    except Exception as e:
        logger.error(f"PostgreSQL initialization failed: {e}")
        logger.error("Make sure PostgreSQL is running: docker-compose up -d postgres")
        raise

    queue = JobQueue.from_settings(settings)
    app.state.queue = queue
    app.state.context = None
    app.state.schedule = None

    # Workers need GitHub credentials; the API can still submit and inspect jobs without them
    try:
        context = IndexerContext.from_settings(settings, repository=repository)
        app.state.context = context
        await queue.start_workers(context, concurrency=settings.job_concurrency)
        logger.info(f"Job workers started ({settings.job_concurrency} workers)")
    except ConfigurationError as e:
        logger.error(f"Job workers not started: {e.message}")

    if settings.enable_scheduler:
        schedule = RecurringSchedule.from_settings(settings, queue)
        schedule.register()
        await schedule.start()
        app.state.schedule = schedule
        logger.info("Recurring schedule started")

    logger.info("SkillHub Indexer API startup complete")

    yield  # Server is running

    logger.info("Shutting down SkillHub Indexer API...")

    # Stop the schedule before the workers so nothing new is enqueued mid-shutdown
    if app.state.schedule:
        await app.state.schedule.stop()

    await queue.shutdown(timeout=30)
    logger.info("Job workers stopped")

    if app.state.context:
        await app.state.context.aclose()

    try:
        await dispose_engines()
    except Exception as e:
        logger.error(f"Error disposing database engines: {e}")

    logger.info("Shutdown complete")

# Create FastAPI app with lifespan
app = FastAPI(
    title="SkillHub Indexer API",
    description="""
    # SkillHub Indexer

    Discovers, indexes and curates agent instruction files:
    - **Discovery** - Curated lists, topic search, fork networks, code search and deep scans
    - **Indexing** - Parsing, validation, security scan and content hashing
    - **Curation** - Classification and duplicate resolution
    - **Job Queue** - PostgreSQL-backed queue with retries and a recurring schedule
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    openapi_url="/openapi.json",
    license_info={
        "name": "MIT License",
        "url": "https://opensource.org/licenses/MIT"
    }
)

# Register standardized error handlers
from core.error_handlers import register_error_handlers
register_error_handlers(app)
logger.info("Standardized error handlers registered")


@app.get("/")
async def root():
    return {
        "app": "SkillHub Indexer",
        "version": "1.0.0",
        "description": "Skill catalog discovery, indexing and curation"
    }

# Import and register API routers
from api.jobs import routes as jobs
from api.curation import routes as curation
from api.system import health

app.include_router(health.router)
app.include_router(jobs.router)
app.include_router(curation.router)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="localhost",
        port=8765,
        reload=settings.debug
    )
