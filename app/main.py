"""
app/main.py

FastAPI entry point for the tariff and trip import API.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.config import get_app_settings, get_scheduler_settings, get_trip_import_settings
from app.schemas.health import HealthResponse

logger = logging.getLogger(__name__)


def _validate_env() -> None:
    """
    Validate startup configuration before any database work happens.

    Every problem is collected and reported in one RuntimeError so the
    operator can fix them all in a single restart.
    """

    from db.config import resolve_database_url

    errors: list[str] = []

    try:
        get_app_settings()
    except RuntimeError as exc:
        errors.append(str(exc))

    try:
        database_url = resolve_database_url()
    except RuntimeError as exc:
        errors.append(str(exc))
    else:
        if not database_url.startswith("postgresql"):
            errors.append("Only PostgreSQL database URLs are supported.")

    if errors:
        raise RuntimeError(
            "Startup validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
        )


def _configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # APScheduler logs every job execution at INFO.
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def _check_database() -> None:
    """
    Confirm the database answers and that every mapped table exists.

    Migrations are never applied here; a missing table aborts startup.
    """
    from sqlalchemy import inspect as sa_inspect
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base
    from db.config import describe_database_url
    from db.session import get_engine

    engine = get_engine()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            existing = set(sa_inspect(connection).get_table_names())
    except SQLAlchemyError as exc:
        raise RuntimeError(f"Database unavailable at {describe_database_url(engine.url)}.") from exc

    missing = sorted(set(Base.metadata.tables) - existing)
    if missing:
        logger.critical(
            "Schema mismatch: missing tables %s. Run 'alembic upgrade head' and restart.",
            ", ".join(missing),
        )
        raise RuntimeError(f"Database schema is missing tables: {', '.join(missing)}.")

    logger.info("Database ready url=%s tables=%d", describe_database_url(engine.url), len(existing))


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    _check_database()

    import_settings = get_trip_import_settings()
    logger.info(
        "Trip import settings ttl_hours=%s max_rows=%s sample_size=%s",
        import_settings.session_ttl_hours,
        import_settings.max_rows,
        import_settings.failure_sample_size,
    )

    scheduler_settings = get_scheduler_settings()
    if not scheduler_settings.enabled:
        logger.info("Scheduler disabled by SCHEDULER_ENABLED")
        yield
        return

    from app.scheduler.jobs import build_scheduler

    scheduler = build_scheduler(scheduler_settings)
    scheduler.start()
    logger.info(
        "Scheduler started jobs=%d purge_interval_minutes=%s",
        len(scheduler.get_jobs()),
        scheduler_settings.purge_interval_minutes,
    )
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler shut down")


def create_app() -> FastAPI:
    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Route Tariffs and Trip Import API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import (
        reference_data_router,
        tariffs_router,
        trip_import_router,
    )

    application.include_router(tariffs_router)
    application.include_router(trip_import_router)
    application.include_router(reference_data_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck() -> HealthResponse:
        return HealthResponse(
            status="ok",
            scheduler_enabled=get_scheduler_settings().enabled,
        )

    return application


app = create_app()
