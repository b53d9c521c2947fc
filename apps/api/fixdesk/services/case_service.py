"""Case service - intake, manual status changes and re-triage."""

import logging
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from fixdesk.db.enums import CaseEventType, CaseStatus, TriageStatus
from fixdesk.db.models import Case, Job
from fixdesk.db.repository import MaintenanceRepository
from fixdesk.schemas.auth import UserSession
from fixdesk.schemas.case import CaseCreate
from fixdesk.services import job_service, notification_facade
from fixdesk.services.case_lifecycle import CaseLifecycle
from fixdesk.utils.normalization import normalize_priority

logger = logging.getLogger(__name__)


def create_case(db: Session, session: UserSession, data: CaseCreate) -> Case:
    """
    Persist a reported issue and queue its triage.

    Returns as soon as the case and its case_triage job are committed;
    classification and matching happen in the worker.
    """
    repository = MaintenanceRepository(db)
    case = repository.add_case(
        Case(
            organization_id=session.org_id,
            reported_by_user_id=session.user_id,
            property_id=data.property_id,
            unit_id=data.unit_id,
            title=data.title.strip(),
            description=data.description.strip(),
            photos=list(data.photos),
            category=(data.category or "").strip() or None,
            urgency=normalize_priority(data.priority).value,
            status=CaseStatus.NEW.value,
            triage_status=TriageStatus.PENDING.value,
        )
    )
    repository.add_case_event(
        case,
        CaseEventType.CREATED,
        to_status=CaseStatus.NEW.value,
        actor_user_id=session.user_id,
    )
    job_service.schedule_case_triage(db, case, requested_by=session.user_id, commit=False)
    db.commit()
    db.refresh(case)
    logger.info("Case %s created in org %s", case.id, case.organization_id)
    return case


def get_case(db: Session, case_id: UUID, org_id: UUID) -> Case | None:
    return (
        db.query(Case)
        .options(selectinload(Case.events))
        .filter(Case.id == case_id, Case.organization_id == org_id)
        .first()
    )


def request_triage(db: Session, case: Case, user_id: UUID | None = None) -> Job:
    """Queue a fresh triage run; its result supersedes the stored one."""
    CaseLifecycle(MaintenanceRepository(db)).ensure_open(case)
    case.triage_status = TriageStatus.PENDING.value
    case.triage_error = None
    job = job_service.schedule_case_triage(db, case, requested_by=user_id, commit=False)
    db.commit()
    db.refresh(job)
    return job


def change_status(
    db: Session,
    case: Case,
    to_status: CaseStatus,
    *,
    actor_user_id: UUID | None = None,
    reason: str | None = None,
) -> Case:
    """
    Manual lifecycle change (hold, resume, complete, cancel).

    Raises CaseClosedError / InvalidTransitionError from the lifecycle.
    """
    lifecycle = CaseLifecycle(MaintenanceRepository(db))
    from_status = case.status
    try:
        changed = lifecycle.transition(
            case, to_status, actor_user_id=actor_user_id, reason=reason
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(case)
    if changed:
        notification_facade.notify_case_status_changed(db, case, from_status, case.status)
    return case
