"""Main entry point for the applytrack scheduler."""
import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.settings import settings
from applytrack.logging_config import setup_logging
from applytrack.persistence.database import init_db
from applytrack.pipeline import EnrichmentPipeline

logger = logging.getLogger(__name__)


async def run_auto_sync(pipeline: EnrichmentPipeline) -> list[str]:
    """Start a sync job for every account flagged for automatic import."""
    account_ids = pipeline.auto_import_account_ids()
    if not account_ids:
        logger.info("No accounts flagged for automatic import")
        return []

    job_ids = []
    for account_id in account_ids:
        job_id = pipeline.start_sync(account_id)
        logger.info("Started sync job %s for account %s", job_id, account_id)
        job_ids.append(job_id)
    return job_ids


def run_cleanup(pipeline: EnrichmentPipeline) -> None:
    removed = pipeline.cleanup_jobs()
    if removed:
        logger.info("Removed %d finished jobs", removed)


def build_scheduler(pipeline: EnrichmentPipeline) -> AsyncIOScheduler:
    """Scheduler with the automatic sync and job cleanup jobs."""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        run_auto_sync,
        IntervalTrigger(minutes=settings.email_check_interval_minutes),
        args=[pipeline],
        id="email_sync",
        name="Email Sync",
        max_instances=1,
    )

    scheduler.add_job(
        run_cleanup,
        IntervalTrigger(minutes=settings.job_cleanup_interval_minutes),
        args=[pipeline],
        id="job_cleanup",
        name="Job Cleanup",
        max_instances=1,
    )
    return scheduler


async def async_main():
    """Async main entry point."""
    setup_logging()
    logger.info("applytrack starting...")

    init_db()
    pipeline = EnrichmentPipeline()

    scheduler = build_scheduler(pipeline)
    scheduler.start()
    logger.info("Scheduler started:")
    logger.info("  - Email sync every %d minutes", settings.email_check_interval_minutes)
    logger.info("  - Job cleanup every %d minutes", settings.job_cleanup_interval_minutes)

    try:
        await run_auto_sync(pipeline)
        logger.info("applytrack running. Press Ctrl+C to stop.")

        while True:
            await asyncio.sleep(60)

    except asyncio.CancelledError:
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()


def main():
    """Main entry point."""
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown complete.")


if __name__ == "__main__":
    main()
