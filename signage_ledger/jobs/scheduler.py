"""
APScheduler configuration.

Jobs:
- monthly_settlements: previous calendar month, on SETTLEMENT_JOB_DAY at
  SETTLEMENT_JOB_HOUR (scheduler timezone)
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.triggers.cron import CronTrigger

from signage_ledger.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 3600,  # A restart within the hour still runs the job
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_scheduled_settlements():
    """Called by APScheduler; a failed run is logged and retried next month or by hand."""
    from signage_ledger.jobs.settlement_jobs import run_monthly_settlements

    try:
        result = await run_monthly_settlements()
        if result is not None:
            logger.info(
                f"Job 'monthly_settlements' completed: {len(result.settlements)} settlements, "
                f"total={result.total_amount}"
            )
    except Exception as e:
        logger.error(f"Job 'monthly_settlements' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not settings.SCHEDULER_ENABLED:
        logger.info("Scheduler disabled by configuration")
        return

    if not scheduler.running:
        scheduler.add_job(
            run_scheduled_settlements,
            trigger=CronTrigger(day=settings.SETTLEMENT_JOB_DAY, hour=settings.SETTLEMENT_JOB_HOUR),
            id='monthly_settlements',
            name='Generate previous month settlements',
            replace_existing=True,
        )
        scheduler.start()
        logger.info("Scheduler started with monthly settlement job")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler shut down")


def get_job_status():
    """Get status of all scheduled jobs."""
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in scheduler.get_jobs()
    ]
