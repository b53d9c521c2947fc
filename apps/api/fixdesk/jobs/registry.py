"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from fixdesk.db.enums import JobType
from fixdesk.jobs.handlers import notifications, triage

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.CASE_TRIAGE.value: triage.process_case_triage,
    JobType.NOTIFICATION.value: notifications.process_notification,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
