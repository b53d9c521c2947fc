"""Job service - durable background work (case triage, notification delivery)."""

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from fixdesk.core.config import settings
from fixdesk.db.enums import JobStatus, JobType
from fixdesk.db.models import Case, Job
from fixdesk.db.types import utcnow

# Retry n waits RETRY_BACKOFF_SECONDS * 2**(n-1)
RETRY_BACKOFF_SECONDS = 30
MAX_ERROR_LENGTH = 2000


def schedule_job(
    db: Session,
    org_id: UUID,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    idempotency_key: str | None = None,
    max_attempts: int | None = None,
    commit: bool = True,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately. With commit=False the job is
    only flushed so it lands in the caller's transaction.
    """
    job = Job(
        organization_id=org_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or utcnow(),
        status=JobStatus.PENDING.value,
        idempotency_key=idempotency_key,
    )
    if max_attempts is not None:
        job.max_attempts = max_attempts
    db.add(job)
    if commit:
        db.commit()
        db.refresh(job)
    else:
        db.flush()
    return job


def schedule_case_triage(
    db: Session, case: Case, *, requested_by: UUID | None = None, commit: bool = True
) -> Job:
    """Queue classify -> rank -> assign for a case."""
    payload = {"case_id": str(case.id)}
    if requested_by:
        payload["requested_by"] = str(requested_by)
    return schedule_job(
        db,
        org_id=case.organization_id,
        job_type=JobType.CASE_TRIAGE,
        payload=payload,
        max_attempts=settings.TRIAGE_MAX_ATTEMPTS,
        commit=commit,
    )


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """Pending jobs whose run_at has passed, oldest first."""
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= utcnow(),
        )
        .order_by(Job.run_at, Job.created_at)
        .limit(limit)
        .all()
    )


def mark_job_running(db: Session, job: Job) -> Job:
    """Claim a job for this attempt."""
    job.status = JobStatus.RUNNING.value
    job.attempts += 1
    db.commit()
    db.refresh(job)
    return job


def mark_job_completed(db: Session, job: Job) -> Job:
    job.status = JobStatus.COMPLETED.value
    job.completed_at = utcnow()
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Record a failed attempt.

    While attempts < max_attempts the job goes back to pending with an
    exponential delay; after that it stays failed.
    """
    job.last_error = error[:MAX_ERROR_LENGTH]
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
        delay = RETRY_BACKOFF_SECONDS * 2 ** max(job.attempts - 1, 0)
        job.run_at = utcnow() + timedelta(seconds=delay)
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job
