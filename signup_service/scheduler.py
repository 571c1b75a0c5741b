# signup_service/scheduler.py
"""
Background scheduler for the signup sweeper.

Uses APScheduler to run the periodic jobs:
- Expiring waitlist offers past their acceptance window
- Auto-completing instances whose start time has passed
- Publishing events whose scheduled publish date has passed
- Sending 24-hour event reminders
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED

from signup_service.background_tasks.signup_tasks import (
    complete_started_instances,
    expire_waitlist_offers,
    publish_due_events,
    send_event_reminders,
)
from signup_service.core.config import settings

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None

SWEEPER_JOBS = (
    (expire_waitlist_offers, 'expire_waitlist_offers', 'Expire Waitlist Offers'),
    (complete_started_instances, 'complete_started_instances', 'Auto-Complete Started Instances'),
    (publish_due_events, 'publish_due_events', 'Publish Scheduled Events'),
    (send_event_reminders, 'send_event_reminders', 'Send Event Reminders'),
)


def _on_job_error(event):
    """Log scheduler job errors with full context."""
    job_id = event.job_id
    exc = event.exception
    tb = event.traceback
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )
    if tb:
        logger.error("Traceback for job %s:\n%s", job_id, tb)


def _on_job_missed(event):
    """Log when a scheduled job misses its execution window."""
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def init_scheduler(start: bool = True):
    """
    Initialize the background scheduler with the sweeper jobs.

    This is called once when the application starts up.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    interval = settings.SWEEPER_INTERVAL_SECONDS
    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            'coalesce': True,  # Combine missed executions
            'max_instances': 1,  # Only one instance of each job at a time
            'misfire_grace_time': interval,
        }
    )

    for func, job_id, name in SWEEPER_JOBS:
        scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=interval),
            id=job_id,
            name=name,
            replace_existing=True
        )
        logger.info(f"Scheduled job: {job_id} (every {interval} seconds)")

    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    if start:
        scheduler.start()
        logger.info("Background scheduler started successfully")

    return scheduler


def shutdown_scheduler():
    """
    Gracefully shutdown the scheduler.

    This is called when the application shuts down.
    """
    global scheduler

    if scheduler is not None:
        if scheduler.running:
            scheduler.shutdown(wait=True)
        logger.info("Background scheduler shutdown complete")
        scheduler = None


def get_scheduler_status():
    """
    Get the current status of all scheduled jobs.

    Returns:
        Dict with scheduler state and job details (next run time, trigger).
    """
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        next_run_time = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": next_run_time.isoformat() if next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs
    }
