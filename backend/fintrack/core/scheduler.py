import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from fintrack.config import Settings
from fintrack.database import utcnow

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()
_session_factory: Any = None
_settings: Settings | None = None
_running = False


async def _process_recurring_rules() -> None:
    """Job: materialize today's due recurring transactions for every user."""
    global _running
    if _running:
        logger.info("Previous recurring processing tick still running, skipping")
        return

    _running = True
    try:
        from fintrack.dependencies import local_today
        from fintrack.recurring.service import process_all_users

        report = await process_all_users(_session_factory, local_today(_settings), _settings)
        if report.transactions_created or report.approvals_created:
            logger.info(
                "Recurring tick created %d transactions and %d approvals",
                report.transactions_created,
                report.approvals_created,
            )
        if report.failures:
            logger.warning("Recurring tick had %d failed rules", len(report.failures))
    except Exception:
        logger.exception("Error processing recurring rules")
    finally:
        _running = False


def setup_scheduler(session_factory: Any, settings: Settings) -> None:
    """Register the periodic jobs and start the scheduler."""
    global _session_factory, _settings
    _session_factory = session_factory
    _settings = settings

    scheduler.add_job(
        _process_recurring_rules,
        IntervalTrigger(minutes=settings.recurrence_interval_minutes),
        id="process_recurring_rules",
        replace_existing=True,
        next_run_time=utcnow(),
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info("Background scheduler started with %d jobs", len(scheduler.get_jobs()))


def shutdown_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
