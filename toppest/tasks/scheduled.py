import logging
import threading
import schedule

from toppest.database import get_store
from toppest.security.sessions import SessionRegistry

logger = logging.getLogger(__name__)

SESSION_CLEANUP_INTERVAL_MINUTES = 30


def cleanup_expired_sessions(store=None):
    """Delete sessions that expired more than the grace period ago"""
    try:
        deleted = SessionRegistry(store or get_store()).cleanup_expired()
        logger.info(f"Session cleanup removed {deleted} sessions")
        return deleted
    except Exception as e:
        logger.exception(f"Session cleanup failed: {str(e)}")
        return 0


def register_jobs(scheduler=None, store=None):
    scheduler = scheduler or schedule.Scheduler()
    scheduler.every(SESSION_CLEANUP_INTERVAL_MINUTES).minutes.do(cleanup_expired_sessions, store=store)
    return scheduler


def run_scheduler(stop_event, scheduler=None, poll_seconds=60):
    scheduler = scheduler or register_jobs()
    logger.info("Scheduler started")
    while not stop_event.is_set():
        scheduler.run_pending()
        stop_event.wait(poll_seconds)
    logger.info("Scheduler stopped")


def start_scheduler_thread(store=None):
    """Run the maintenance jobs on a daemon thread; returns its stop event"""
    stop_event = threading.Event()
    thread = threading.Thread(
        target=run_scheduler,
        args=(stop_event, register_jobs(store=store)),
        name="toppest-scheduler",
        daemon=True
    )
    thread.start()
    return stop_event
