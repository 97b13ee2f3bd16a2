"""Runs the daily signal batch on a cron schedule via APScheduler."""

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from config.settings import get_settings
from database.connection import get_connection
from database.schema import initialize_database
from engine.daily_orchestrator import DailyOrchestrator
from engine.narrative import GroqNarrator

logger = logging.getLogger("horsai.engine.scheduler")

JOB_ID = "horsai_daily"


def run_daily_job():
    """Scheduled entry point; a failed run is logged and retried next day."""
    narrator = GroqNarrator()
    orchestrator = DailyOrchestrator(narrator=narrator if narrator.is_available() else None)
    try:
        stats = orchestrator.run()
    except Exception as e:
        logger.error("Daily signal job failed: %s", e, exc_info=True)
        return None
    return stats


def _ensure_schema():
    initialize_database(get_connection())


def _add_scheduler_jobs(scheduler):
    settings = get_settings()
    scheduler.add_job(
        run_daily_job,
        CronTrigger(hour=settings.run_hour, minute=settings.run_minute,
                    timezone=settings.timezone),
        id=JOB_ID,
        name="Horsai daily signal run",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )


def start_scheduler():
    """Blocking scheduler for the CLI."""
    _ensure_schema()
    scheduler = BlockingScheduler()
    _add_scheduler_jobs(scheduler)

    settings = get_settings()
    logger.info("Scheduler started: daily run at %02d:%02d %s",
                settings.run_hour, settings.run_minute, settings.timezone)
    print("Horsai scheduler started. Press Ctrl+C to stop.")

    try:
        scheduler.start()
    except KeyboardInterrupt:
        scheduler.shutdown()
        print("Scheduler stopped.")


# Global reference so the background scheduler isn't garbage-collected
_background_scheduler = None


def start_background_scheduler():
    """Start a non-blocking scheduler for embedding in another process.

    Safe to call multiple times - only starts once.
    """
    global _background_scheduler
    if _background_scheduler is not None:
        return _background_scheduler

    _ensure_schema()
    _background_scheduler = BackgroundScheduler()
    _add_scheduler_jobs(_background_scheduler)
    _background_scheduler.start()
    logger.info("Background scheduler started with %d jobs",
                len(_background_scheduler.get_jobs()))
    return _background_scheduler
