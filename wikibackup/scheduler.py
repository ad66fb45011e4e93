"""
APScheduler configuration for running wiki backups in-process.

An alternative to a cron entry: 'wikibackup-scheduler' stays in the
foreground and runs one backup per SCHEDULE_CRON tick.
"""

import atexit
import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from wikibackup import configure_logging
from wikibackup.config import BackupSettings, ConfigError, load_settings
from wikibackup.backup.executor import execute_backup


logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'wiki_backup'

# Global scheduler instance
scheduler = None


def init_scheduler(settings: BackupSettings):
    """
    Initialize and configure APScheduler.

    Args:
        settings: Settings passed to every scheduled run

    Raises:
        ConfigError: If SCHEDULE_CRON is not a valid crontab expression
    """
    global scheduler

    if scheduler is not None:
        return scheduler

    try:
        trigger = CronTrigger.from_crontab(settings.schedule_cron, timezone=settings.scheduler_timezone)
    except ValueError as e:
        raise ConfigError(f"Invalid SCHEDULE_CRON '{settings.schedule_cron}': {e}")

    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending runs into one
        'max_instances': 1,  # Only one backup at a time
        'misfire_grace_time': 3600  # Still run if the process was asleep for up to an hour
    }

    scheduler = BlockingScheduler(
        executors=executors,
        job_defaults=job_defaults,
        timezone=settings.scheduler_timezone
    )

    scheduler.add_job(
        func=run_scheduled_backup,
        trigger=trigger,
        kwargs={'settings': settings},
        id=BACKUP_JOB_ID,
        name='Automated Wiki Backup',
        replace_existing=True
    )

    return scheduler


def run_scheduled_backup(settings: BackupSettings):
    """Job function: run one backup and log its outcome."""
    record = execute_backup(settings)
    logger.info(f"Scheduled backup finished with status: {record.status}")
    return record


def start_scheduler():
    """
    Start the APScheduler. Blocks until the scheduler is shut down.
    """
    global scheduler

    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if scheduler.running:
        logger.info("Scheduler already running")
        return

    job = scheduler.get_job(BACKUP_JOB_ID)
    if job is not None:
        logger.info(f"Scheduled job: {job.name} ({job.trigger})")

    scheduler.start()


def stop_scheduler():
    """Stop the APScheduler."""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("APScheduler stopped")


def main() -> int:
    """Entry point for 'wikibackup-scheduler'."""
    try:
        settings = load_settings()
        configure_logging(settings)
        init_scheduler(settings)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    atexit.register(stop_scheduler)

    try:
        start_scheduler()
    except (KeyboardInterrupt, SystemExit):
        stop_scheduler()

    return 0
