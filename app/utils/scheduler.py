"""
Scheduler Service
Runs the nightly recurring-expense detection job using APScheduler
"""
import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import settings

logger = logging.getLogger(__name__)

JOB_ID = "recurring_expense_detection"

scheduler: Optional[BackgroundScheduler] = None


def recurring_detection_job():
    """Re-run recurring-expense detection for every user."""
    from app.db import recurring, users

    user_ids = users.list_user_ids()
    logger.info(f"Executing recurring detection job for {len(user_ids)} users...")
    detected = 0
    for user_id in user_ids:
        try:
            detected += recurring.run_detection(user_id)["detected"]
        except Exception as e:
            # one bad user must not stop the batch
            logger.error(f"Recurring detection failed for user {user_id}: {str(e)}", exc_info=True)
    logger.info(f"Recurring detection job finished: {detected} recurring expenses upserted")
    return detected


def start_scheduler():
    """Start the background scheduler with the nightly detection job"""
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler is already running")
        return

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        recurring_detection_job,
        trigger=CronTrigger(
            hour=settings.RECURRING_DETECTION_HOUR,
            minute=settings.RECURRING_DETECTION_MINUTE,
        ),
        id=JOB_ID,
        name="Recurring expense detection",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started: recurring detection daily at "
        f"{settings.RECURRING_DETECTION_HOUR:02d}:{settings.RECURRING_DETECTION_MINUTE:02d} UTC"
    )


def stop_scheduler():
    """Stop the background scheduler"""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown()
        scheduler = None
        logger.info("Scheduler stopped")


def get_scheduler_status():
    """Get current scheduler status"""
    if scheduler is None:
        return {"running": False}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs": jobs
    }
