"""Notification facade for domain services.

Domain services emit short labelled events here; delivery (webhook or log)
happens in the notification job handler. Call these after the domain
transaction has committed so a rolled-back change never notifies.
"""

from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy.orm import Session

from fixdesk.db.enums import EVENT_LABELS, JobType, NotificationEvent
from fixdesk.db.models import Appointment, Case, Job, Proposal
from fixdesk.services import job_service

logger = logging.getLogger(__name__)


def emit_event(
    db: Session,
    case: Case,
    event: NotificationEvent,
    recipient_user_ids: Iterable[UUID | None] = (),
    details: dict | None = None,
) -> Job | None:
    recipients = sorted({str(user_id) for user_id in recipient_user_ids if user_id})
    if not recipients:
        logger.debug("No recipients for %s on case %s", event.value, case.id)
        return None
    payload = {
        "event": event.value,
        "label": EVENT_LABELS[event],
        "case_id": str(case.id),
        "recipient_user_ids": recipients,
        "details": details or {},
    }
    return job_service.schedule_job(
        db,
        org_id=case.organization_id,
        job_type=JobType.NOTIFICATION,
        payload=payload,
    )


# =============================================================================
# Domain events
# =============================================================================


def notify_case_assigned(db: Session, case: Case, provider_user_id: UUID | None) -> Job | None:
    return emit_event(
        db,
        case,
        NotificationEvent.CASE_ASSIGNED,
        [provider_user_id],
        {"provider_id": str(case.assigned_provider_id)},
    )


def notify_proposal_submitted(db: Session, case: Case, proposal: Proposal) -> Job | None:
    return emit_event(
        db,
        case,
        NotificationEvent.PROPOSAL_SUBMITTED,
        [case.reported_by_user_id],
        {"proposal_id": str(proposal.id)},
    )


def notify_appointment_approved(
    db: Session,
    case: Case,
    appointment: Appointment,
    recipient_user_ids: Iterable[UUID | None],
) -> Job | None:
    return emit_event(
        db,
        case,
        NotificationEvent.APPOINTMENT_APPROVED,
        recipient_user_ids,
        {"appointment_id": str(appointment.id)},
    )


def notify_appointment_declined(
    db: Session,
    case: Case,
    proposal: Proposal,
    recipient_user_ids: Iterable[UUID | None],
) -> Job | None:
    return emit_event(
        db,
        case,
        NotificationEvent.APPOINTMENT_DECLINED,
        recipient_user_ids,
        {"proposal_id": str(proposal.id)},
    )


def notify_approval_required(
    db: Session, case: Case, proposal: Proposal, owner_user_ids: Iterable[UUID]
) -> Job | None:
    return emit_event(
        db,
        case,
        NotificationEvent.APPROVAL_REQUIRED,
        owner_user_ids,
        {"proposal_id": str(proposal.id), "reason": proposal.auto_approval_reason},
    )


def notify_case_status_changed(
    db: Session, case: Case, from_status: str, to_status: str
) -> Job | None:
    return emit_event(
        db,
        case,
        NotificationEvent.CASE_STATUS_CHANGED,
        [case.reported_by_user_id],
        {"from_status": from_status, "to_status": to_status},
    )
