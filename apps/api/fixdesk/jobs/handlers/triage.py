"""Case triage job handler."""

from __future__ import annotations

import logging
from uuid import UUID

from fixdesk.core.structured_logging import build_log_context
from fixdesk.services.engine import build_engine

logger = logging.getLogger(__name__)


async def process_case_triage(db, job) -> None:
    """Classify, rank and assign the case named in the payload."""
    payload = job.payload or {}
    case_id = payload.get("case_id")
    if not case_id:
        raise ValueError("Missing case_id in job payload")
    try:
        case_uuid = UUID(str(case_id))
    except ValueError as exc:
        raise ValueError(f"Invalid case_id in job payload: {case_id}") from exc

    engine = build_engine(db)
    outcome = await engine.triage.run(case_uuid)
    logger.info(
        "Case triage job finished skipped=%s matched=%s",
        outcome.skipped,
        bool(outcome.match),
        extra=build_log_context(
            org_id=job.organization_id, case_id=case_uuid, job_id=job.id
        ),
    )
