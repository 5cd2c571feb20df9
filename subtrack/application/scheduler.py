"""
Background scheduler: runs periodic jobs inside the FastAPI process.

Jobs:
  - Daily renewal job (FX_REFRESH_HOUR_UTC, default 06:00 UTC):
    refresh FX rates, then send renewal reminders
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from subtrack.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def run_daily_job() -> None:
    """FX refresh followed by the notification sweep, each on its own guard."""
    from subtrack.infrastructure.db.session import get_session_factory
    from subtrack.application.fx import FxRateStore
    from subtrack.application.renewal_notifications import run_notification_sweep

    Session = get_session_factory()
    db = Session()
    try:
        snapshot = FxRateStore.from_settings(db).refresh()
        if snapshot is None:
            logger.warning("FX refresh produced no snapshot")
        try:
            run_notification_sweep(db)
        except Exception:
            logger.exception("Renewal notification sweep failed")
    finally:
        db.close()


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    settings = get_settings()
    scheduler.add_job(
        run_daily_job,
        CronTrigger(hour=settings.FX_REFRESH_HOUR_UTC, minute=0, timezone="UTC"),
        id="daily_renewals",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Scheduler started: daily_renewals (%02d:00 UTC)", settings.FX_REFRESH_HOUR_UTC)


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
