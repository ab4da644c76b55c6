"""
APScheduler Configuration

Background job scheduler for the fulfillment core. Jobs register
themselves through register_*_job(scheduler) functions; only the
settlement checker exists today.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from orderflow.config import settings

logger = logging.getLogger(__name__)

# One settlement pass at a time; missed runs collapse into the next one
scheduler = AsyncIOScheduler(
    jobstores={'default': MemoryJobStore()},
    executors={'default': AsyncIOExecutor()},
    job_defaults={
        'coalesce': True,
        'max_instances': 1,
        'misfire_grace_time': settings.SETTLEMENT_CHECK_INTERVAL_MINUTES * 60,
    },
    timezone=settings.SCHEDULER_TIMEZONE or 'UTC'
)


def start_scheduler():
    """Register enabled jobs and start the scheduler."""
    if scheduler.running:
        return

    from orderflow.jobs.settlement_jobs import register_settlement_job

    if settings.SETTLEMENT_CHECK_ENABLED:
        register_settlement_job(scheduler)

    scheduler.start()
    logger.info("Background job scheduler started")

    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
