"""
TradeWatch Detection Scheduler
Uses APScheduler to run the daily detection run and weekly alert cleanup.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from tradewatch.core.config import settings

logger = logging.getLogger("tradewatch.scheduler")

scheduler = BackgroundScheduler()


def job_generate_alerts():
    """Daily run of every detector; new anomalies become alerts."""
    logger.info("=== SCHEDULED JOB: anomaly detection started ===")
    try:
        from tradewatch.core.database import SessionLocal
        from tradewatch.services.alert_generator import generate_all_alerts

        db = SessionLocal()
        try:
            result = generate_all_alerts(db)
            logger.info(
                f"Detection job complete: {result['alerts_created']} alerts created "
                f"from {result['anomalies_detected']} anomalies"
            )
        finally:
            db.close()
    except Exception as e:
        logger.error(f"Detection job failed: {e}", exc_info=True)


def job_clear_old_alerts():
    """Weekly purge of long-resolved alerts."""
    logger.info("=== SCHEDULED JOB: resolved alert cleanup ===")
    try:
        from tradewatch.core.database import SessionLocal
        from tradewatch.services.alert_generator import clear_old_alerts

        db = SessionLocal()
        try:
            deleted = clear_old_alerts(db, settings.resolved_alert_retention_days)
            logger.info(f"Cleanup job complete: {deleted} alerts removed")
        finally:
            db.close()
    except Exception as e:
        logger.error(f"Cleanup job failed: {e}", exc_info=True)


def start_scheduler():
    """
    Register and start all scheduled jobs.
    Called once at application startup.
    """
    if scheduler.running:
        logger.warning("Scheduler already running, skipping start")
        return

    # Daily detection, 03:00 by default
    scheduler.add_job(
        job_generate_alerts,
        CronTrigger(hour=settings.detection_cron_hour, minute=0),
        id="detection_daily",
        name="Daily anomaly detection",
        replace_existing=True,
    )

    # Weekly cleanup, an hour after detection
    scheduler.add_job(
        job_clear_old_alerts,
        CronTrigger(
            day_of_week=settings.cleanup_cron_day_of_week,
            hour=(settings.detection_cron_hour + 1) % 24,
            minute=0,
        ),
        id="cleanup_weekly",
        name="Weekly resolved alert cleanup",
        replace_existing=True,
    )

    scheduler.start()

    jobs = scheduler.get_jobs()
    logger.info(f"Scheduler started with {len(jobs)} jobs:")
    for job in jobs:
        logger.info(f"  - {job.name} (next run: {job.next_run_time})")


def stop_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler status and next run times."""
    jobs = scheduler.get_jobs() if scheduler.running else []
    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if job.next_run_time else None,
            }
            for job in jobs
        ],
    }
