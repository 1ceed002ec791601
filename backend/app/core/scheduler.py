"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Purge expired sessions: Runs every SESSION_CLEANUP_INTERVAL_MINUTES

Password reset records are never swept; their expiry is checked when used.
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from app.core.config import settings
from app.core.database import SessionLocal
from app.services.session_service import SessionService
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def purge_expired_sessions_job():
    """Delete session rows whose expiry has passed"""
    db = SessionLocal()
    try:
        purged = SessionService(db).purge_expired()
        if purged > 0:
            logger.info(f"Session cleanup job completed: Deleted {purged} expired sessions")
        else:
            logger.debug("Session cleanup job completed: No expired sessions found")
    except Exception as e:
        logger.error(f"Error in purge_expired_sessions_job: {str(e)}")
        db.rollback()
    finally:
        db.close()


def start_scheduler():
    """
    Start the background scheduler.

    This should be called when the FastAPI app starts.
    """
    if not scheduler.running:
        scheduler.add_job(
            purge_expired_sessions_job,
            trigger=IntervalTrigger(minutes=settings.SESSION_CLEANUP_INTERVAL_MINUTES),
            id="purge_expired_sessions",
            name="Purge expired sessions",
            replace_existing=True
        )

        scheduler.start()
        logger.info(
            f"Background scheduler started. Session cleanup scheduled every "
            f"{settings.SESSION_CLEANUP_INTERVAL_MINUTES} minutes."
        )


def stop_scheduler():
    """
    Stop the background scheduler.

    This should be called when the FastAPI app shuts down.
    """
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
