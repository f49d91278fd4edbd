"""
APScheduler configuration and backup scheduling for pibackup.

Two ways of running on a schedule:
- Served application: a BackgroundScheduler fires the backup in a worker thread
- CLI daemon: the same cron trigger computes fire times and the backup runs on
  the main thread, so termination signals interrupt it
"""

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from pibackup.backup.executor import run_backup

logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'image_backup'

# Global scheduler instance and Flask app reference
scheduler = None
flask_app = None


def create_trigger(app_config) -> CronTrigger:
    """
    Build the backup trigger from configuration.

    Raises:
        ValueError: If the cron expression is invalid
    """
    return CronTrigger.from_crontab(
        app_config['BACKUP_SCHEDULE_CRON'],
        timezone=app_config.get('SCHEDULER_TIMEZONE') or 'UTC'
    )


def init_scheduler(app):
    """
    Create the background scheduler with the single backup job.

    Calling it again returns the existing scheduler.

    Args:
        app: Flask app whose config holds BACKUP_SCHEDULE_CRON

    Returns:
        BackgroundScheduler (not started)
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # The job thread needs the app to push an app context
    flask_app = app

    # One worker thread: image copies never overlap
    executors = {'default': ThreadPoolExecutor(max_workers=1)}

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one backup at a time
        'misfire_grace_time': 3600
    }

    scheduler = BackgroundScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone=app.config.get('SCHEDULER_TIMEZONE') or 'UTC'
    )

    scheduler.add_job(
        func=_execute_backup_wrapper,
        trigger=create_trigger(app.config),
        id=BACKUP_JOB_ID,
        name=f"Image backup: {app.config['BACKUP_HOSTNAME']}",
        replace_existing=True
    )

    return scheduler


def start_scheduler():
    """
    Start firing the backup job.

    Raises:
        RuntimeError: If init_scheduler() has not been called
    """
    global scheduler

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
    """Shut the background scheduler down (registered with atexit)."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("APScheduler stopped")


def _execute_backup_wrapper():
    """
    Run a backup in scheduler context.

    Runs inside an app context so the database session is properly managed
    in the scheduler's worker thread.
    """
    global flask_app

    with flask_app.app_context():
        logger.info("Scheduler executing image backup")
        run = run_backup()
        logger.info(f"Scheduled backup finished with status: {run.status}")


def get_scheduled_jobs() -> list:
    """
    Describe the jobs of the background scheduler for the status API.

    Returns:
        List of dicts with id, name, next_run (ISO 8601 or None) and trigger
    """
    global scheduler

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
    global scheduler
    return scheduler is not None and scheduler.running


def run_daemon(
    app,
    sleep: Callable[[float], None] = time.sleep,
    max_runs: Optional[int] = None
) -> Optional[str]:
    """
    Run backups on the configured cron schedule until interrupted.

    Args:
        app: Flask app instance
        sleep: Sleep function (replaced in tests)
        max_runs: Stop after this many runs (None = run forever)

    Returns:
        Status of the last run, or None if no run happened
    """
    trigger = create_trigger(app.config)
    runs = 0
    previous = None
    last_status = None

    while max_runs is None or runs < max_runs:
        now = datetime.now(timezone.utc)
        # Slots missed while the previous backup ran are coalesced, never replayed
        start = now if previous is None else max(now, previous + timedelta(seconds=1))
        next_fire = trigger.get_next_fire_time(None, start)
        if next_fire is None:
            logger.info("Schedule has no further fire times, stopping")
            break

        if previous is not None:
            missed = trigger.get_next_fire_time(None, previous + timedelta(seconds=1))
            if missed is not None and missed < next_fire:
                logger.warning(f"Backup overran its schedule; skipping slots from {missed.isoformat()}")

        logger.info(f"Next backup at {next_fire.isoformat()}")
        delay = (next_fire - now).total_seconds()
        if delay > 0:
            sleep(delay)

        with app.app_context():
            run = run_backup()
            last_status = run.status
        logger.info(f"Scheduled backup finished with status: {last_status}")

        if last_status == 'interrupted':
            break

        previous = next_fire
        runs += 1

    return last_status
