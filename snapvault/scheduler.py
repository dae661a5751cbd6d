"""
APScheduler configuration for Snapvault.

Manages:
- The periodic "is a backup due?" check
- Manual backup triggers

Backups run on the scheduler's worker threads, so the host process is never
blocked by archiving.
"""

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.executors.pool import ThreadPoolExecutor


logger = logging.getLogger(__name__)

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None

CHECK_JOB_ID = 'backup_check'


def _get_orchestrator():
    return flask_app.extensions['snapvault']


def init_scheduler(app):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance with a BackupOrchestrator registered in
            app.extensions['snapvault']
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

    # Two workers so a trigger arriving during a run is dropped by the
    # orchestrator instead of waiting in the pool queue
    executors = {
        'default': ThreadPoolExecutor(max_workers=2)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BackgroundScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone='UTC'
    )

    scheduler.add_job(
        func=_check_backup_wrapper,
        trigger=IntervalTrigger(seconds=app.config.get('CHECK_INTERVAL_SECONDS', 60)),
        id=CHECK_JOB_ID,
        name='Backup Due Check',
        replace_existing=True
    )

    return scheduler


def start_scheduler():
    """
    Start the APScheduler.

    Should be called after Flask app is initialized.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if not scheduler.running:
        scheduler.start()
        logger.info(f"APScheduler started (state={scheduler.state})")

        for job in scheduler.get_jobs():
            next_run = job.next_run_time.isoformat() if job.next_run_time else 'N/A'
            logger.info(f"  - {job.id}: {job.name} (next run: {next_run})")
    else:
        logger.info(f"Scheduler already running (state={scheduler.state})")


def stop_scheduler():
    """Stop the APScheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def _check_backup_wrapper():
    """
    Periodic job: run a backup if one is due.

    Runs inside an app context so the orchestrator can use the database
    session.
    """
    with flask_app.app_context():
        try:
            history = _get_orchestrator().run_if_due()
            if history is not None:
                logger.info(f"Scheduled backup finished with status: {history.status}")
        except Exception as e:
            logger.exception(f"Scheduled backup check failed: {e}")


def _run_backup_wrapper(quiet: bool = False):
    """
    One-shot job: run a backup immediately.

    Args:
        quiet: Suppress started/finished notifications
    """
    with flask_app.app_context():
        try:
            history = _get_orchestrator().run_now(quiet=quiet)
            if history is None:
                logger.info("Manual backup skipped: another backup is running")
            else:
                logger.info(f"Manual backup finished with status: {history.status}")
        except Exception as e:
            logger.exception(f"Manual backup failed: {e}")


def trigger_backup_now(quiet: bool = False) -> str:
    """
    Manually trigger a backup.

    The backup runs on a scheduler thread; this returns immediately.

    Args:
        quiet: Suppress started/finished notifications

    Returns:
        ID of the scheduled one-shot job
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    now = datetime.now(timezone.utc)
    job_id = f"manual_{int(now.timestamp() * 1000)}"

    # Small delay avoids racing the caller's own request/transaction
    scheduler.add_job(
        func=_run_backup_wrapper,
        args=[quiet],
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=job_id,
        name='Manual Backup',
        replace_existing=False
    )

    logger.info(f"Manually triggered backup (quiet={quiet})")
    return job_id


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    if scheduler is None:
        return []

    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        }
        for job in scheduler.get_jobs()
    ]


def is_scheduler_running() -> bool:
    return scheduler is not None and scheduler.running
