"""
app/scheduler/jobs.py

APScheduler-based background jobs for trip import housekeeping.

Schedule
--------
  purge_expired_import_sessions - every SCHEDULER_PURGE_INTERVAL_MINUTES
                                  (default 60)

Import sessions are kept for operator review until their expiry time; this
job deletes the expired ones so the sessions table does not grow unbounded.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import SchedulerSettings, get_scheduler_settings
from app.services.trip_import_service import get_trip_import_service
from db.session import session_scope

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: Expired import session purge
# ---------------------------------------------------------------------------


def purge_expired_import_sessions() -> None:
    """
    Delete import sessions whose expiry time has passed.
    Failures are logged and left for the next run.
    """
    logger.info("Scheduler: purge_expired_import_sessions starting")

    with session_scope() as db:
        try:
            deleted = get_trip_import_service().purge_expired(db=db)
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            logger.warning("Scheduler: purge_expired_import_sessions failed: %s", exc)
            return

    logger.info("Scheduler: purge_expired_import_sessions complete deleted=%s", deleted)


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(settings: SchedulerSettings | None = None) -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    settings = settings or get_scheduler_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        purge_expired_import_sessions,
        trigger="interval",
        minutes=settings.purge_interval_minutes,
        id="purge_expired_import_sessions",
        name="Expired import session purge",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=600,
    )

    return scheduler
