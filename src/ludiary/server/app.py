"""FastAPI application for the ludiary server.

This module creates and configures the FastAPI application with:
- REST API for users, sync records, friends, groups and notifications
- Daily purge of old tombstones

Usage:
    uvicorn ludiary.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from ludiary.server.api.errors import install_error_handlers
from ludiary.server.api.router import router as api_router
from ludiary.server.database import Database
from ludiary.server.relationships import RelationshipService
from ludiary.server.scheduler import TombstonePurgeScheduler

# Configuration from environment variables with defaults
DB_PATH = Path(os.environ.get("LUDIARY_DB_PATH", "ludiary.db"))
LOG_PATH = Path(os.environ.get("LUDIARY_LOG_PATH", "ludiary-server.log"))
TOMBSTONE_RETENTION_DAYS = int(os.environ.get("LUDIARY_TOMBSTONE_RETENTION_DAYS", "30"))


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for ludiary
    root_logger = logging.getLogger("ludiary")
    root_logger.setLevel(logging.INFO)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


logger = logging.getLogger(__name__)


def create_app(
    db: Database,
    retention_days: int = TOMBSTONE_RETENTION_DAYS,
    enable_scheduler: bool = False,
) -> FastAPI:
    """Create FastAPI application with a custom database.

    This is primarily used for testing with isolated databases.

    Args:
        db: Database instance.
        retention_days: Days a tombstone is kept before being purged.
        enable_scheduler: Start the daily tombstone purge job.

    Returns:
        Configured FastAPI application.
    """
    scheduler = TombstonePurgeScheduler(db, retention_days=retention_days)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        db_path = getattr(db, "_db_path", "in-memory")
        logger.info("=" * 60)
        logger.info("Ludiary Server Starting")
        logger.info("=" * 60)
        logger.info("  Database:  %s", db_path)
        logger.info("  Retention: %d days", retention_days)
        logger.info("  Logs:      %s", LOG_PATH.absolute())
        logger.info("=" * 60)
        if enable_scheduler:
            scheduler.start()

        yield

        # Shutdown
        scheduler.stop()
        logger.info("Ludiary Server shutting down")

    application = FastAPI(
        title="Ludiary Server",
        description="Game diary sync and relationship server",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.state.db = db
    application.state.relationships = RelationshipService(db)
    application.state.purge_scheduler = scheduler

    install_error_handlers(application)
    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    setup_logging(LOG_PATH)
    return create_app(db=Database(DB_PATH), enable_scheduler=True)
