"""
APScheduler configuration and job scheduling for chunkvault.

Manages:
- The scheduled backup run (cron expression from BACKUP_SCHEDULE)
- Daily local retention enforcement
- Manual run triggers
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from chunkvault.backup.errors import ConfigError
from chunkvault.backup.models import BackupConfig, BackupResult, RunState
from chunkvault.backup.orchestrator import run_backup
from chunkvault.backup.retention import enforce_retention


logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'scheduled_backup'
RETENTION_JOB_ID = 'retention_cleanup'

# Global scheduler instance, Flask app reference and most recent run result
scheduler = None
flask_app = None
last_result: Optional[BackupResult] = None


def init_scheduler(app):
    """
    Initialize and configure APScheduler.

    Args:
        app: Flask app instance
    """
    global scheduler, flask_app

    if scheduler is not None:
        return scheduler

    # Store Flask app reference for use in background threads
    flask_app = app

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
        timezone=app.config.get('SCHEDULER_TIMEZONE', 'UTC')
    )

    scheduler.add_job(
        func=_execute_retention_wrapper,
        trigger=CronTrigger(hour=app.config.get('RETENTION_SCHEDULE_HOUR', 3), minute=0),
        id=RETENTION_JOB_ID,
        name='Daily Retention Cleanup',
        replace_existing=True
    )

    schedule = app.config.get('BACKUP_SCHEDULE')
    if schedule:
        try:
            scheduler.add_job(
                func=_execute_backup_wrapper,
                trigger=CronTrigger.from_crontab(schedule, timezone='UTC'),
                id=BACKUP_JOB_ID,
                name='Scheduled Backup',
                replace_existing=True
            )
            logger.info(f"Scheduled backup ({schedule})")
        except ValueError as e:
            logger.error(f"Invalid BACKUP_SCHEDULE {schedule!r}: {e}")
    else:
        logger.info("BACKUP_SCHEDULE is empty, scheduled backups disabled")

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
        logger.info(f"APScheduler started successfully (state={scheduler.state}, running={scheduler.running})")

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


def execute_configured_backup(settings: Mapping[str, Any]) -> BackupResult:
    """
    Resolve the backup configuration from app settings and run one backup.

    A configuration error produces a failed result instead of raising.

    Args:
        settings: Application config mapping

    Returns:
        BackupResult of the run
    """
    global last_result

    try:
        config = BackupConfig.from_mapping(settings)
    except ConfigError as e:
        logger.error(f"Backup not started: {e}")
        result = BackupResult(state=RunState.FAILED, error=str(e), error_type=type(e).__name__)
    else:
        result = run_backup(config)

    last_result = result
    return result


def _execute_backup_wrapper():
    """Run a backup inside the stored Flask app's context."""
    with flask_app.app_context():
        try:
            logger.info("Scheduler executing backup")
            result = execute_configured_backup(flask_app.config)
            logger.info(f"Backup completed with status: {result.status}")
        except Exception:
            logger.exception("Scheduled backup crashed")


def _execute_retention_wrapper():
    """Run local retention inside the stored Flask app's context."""
    with flask_app.app_context():
        try:
            enforce_retention(flask_app.config['STAGING_DIR'], int(flask_app.config['RETENTION_DAYS']))
        except Exception:
            logger.exception("Retention cleanup crashed")


def trigger_backup_now() -> str:
    """
    Manually trigger a backup run immediately.

    Returns:
        ID of the one-off scheduler job
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized")

    # 1 second delay to avoid racing the caller
    now = datetime.now(timezone.utc)
    job_id = f"manual_{int(now.timestamp())}_{uuid.uuid4().hex[:8]}"
    scheduler.add_job(
        func=_execute_backup_wrapper,
        trigger=DateTrigger(run_date=now + timedelta(seconds=1)),
        id=job_id,
        name='Manual Backup',
        replace_existing=False
    )

    logger.info(f"Manually triggered backup ({job_id})")
    return job_id


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs.

    Returns:
        List of dicts with job information
    """
    if scheduler is None:
        return []

    jobs = []

    for job in scheduler.get_jobs():
        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
            'trigger': str(job.trigger)
        })

    return jobs


def is_scheduler_running() -> bool:
    return scheduler is not None and scheduler.running


def get_last_result() -> Optional[BackupResult]:
    return last_result
