"""
Background worker for processing scheduled jobs.

Usage:
    python -m fixdesk.worker

The worker polls for pending jobs (case triage, notification delivery) and
processes them. For production, run this as a separate process.
"""

import asyncio
import logging

from fixdesk.core.config import settings
from fixdesk.core.error_tracking import capture_exception, init_sentry
from fixdesk.core.structured_logging import build_log_context
from fixdesk.db.session import SessionLocal
from fixdesk.jobs.registry import resolve_job_handler
from fixdesk.services import job_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
        extra=build_log_context(org_id=job.organization_id, job_id=job.id),
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def process_pending_jobs(db, limit: int = 10) -> int:
    """Run one batch of due jobs; returns how many were attempted."""
    jobs = job_service.get_pending_jobs(db, limit=limit)
    if jobs:
        logger.info("Found %s pending jobs", len(jobs))

    for job in jobs:
        try:
            job_service.mark_job_running(db, job)
            await process_job(db, job)
            job_service.mark_job_completed(db, job)
            logger.info("Job %s completed successfully", job.id)
        except Exception as e:
            db.rollback()
            job_service.mark_job_failed(db, job, f"{type(e).__name__}: {e}")
            capture_exception(e)
            logger.error(
                "Job %s failed: %s (attempt %s/%s)",
                job.id,
                type(e).__name__,
                job.attempts,
                job.max_attempts,
            )
    return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.WORKER_POLL_INTERVAL_SECONDS,
        settings.WORKER_BATCH_SIZE,
    )
    if not settings.NOTIFICATION_WEBHOOK_URL:
        logger.warning("NOTIFICATION_WEBHOOK_URL not set - notifications will be logged only")

    while True:
        with SessionLocal() as db:
            try:
                await process_pending_jobs(db, limit=settings.WORKER_BATCH_SIZE)
            except Exception as e:
                logger.error("Error in worker loop: %s", type(e).__name__)
                capture_exception(e)

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL_SECONDS)


def main() -> None:
    init_sentry()
    asyncio.run(worker_loop())


if __name__ == "__main__":
    main()
