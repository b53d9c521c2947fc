"""Maintenance case API endpoints (intake, lifecycle, guidance, proposals)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fixdesk.core.config import settings
from fixdesk.core.deps import get_current_session, get_db, get_engine, require_csrf_header
from fixdesk.db.enums import ROLES_CAN_MANAGE_CASES, CaseStatus, Role
from fixdesk.db.models import Case
from fixdesk.schemas.auth import UserSession
from fixdesk.schemas.case import (
    CaseCreate,
    CaseCreated,
    CaseRead,
    CaseStatusUpdate,
    GuidanceRead,
    TriageRequested,
)
from fixdesk.schemas.proposal import AppointmentRead, ProposalCreate, ProposalRead
from fixdesk.services import case_service
from fixdesk.services.case_lifecycle import CaseClosedError, InvalidTransitionError
from fixdesk.services.engine import MaintenanceEngine
from fixdesk.services.proposal_service import ProposalValidationError, SelectionConflictError

router = APIRouter()


def _load_case(db: Session, case_id: UUID, session: UserSession) -> Case:
    """Org-scoped case lookup; tenants and contractors only see their own cases."""
    case = case_service.get_case(db, case_id, session.org_id)
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    if session.role == Role.TENANT and case.reported_by_user_id != session.user_id:
        raise HTTPException(status_code=404, detail="Case not found")
    if session.role == Role.CONTRACTOR:
        provider = case.assigned_provider
        if not provider or provider.user_id != session.user_id:
            raise HTTPException(status_code=404, detail="Case not found")
    return case


# =============================================================================
# Intake and lifecycle
# =============================================================================


@router.post(
    "",
    response_model=CaseCreated,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
def create_case(
    data: CaseCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Report an issue. Triage runs in the background; poll the case for results."""
    case = case_service.create_case(db, session, data)
    return CaseCreated(id=case.id, status=case.status, triage_status=case.triage_status)


@router.get("/{case_id}", response_model=CaseRead)
def get_case(
    case_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _load_case(db, case_id, session)


@router.post(
    "/{case_id}/triage",
    response_model=TriageRequested,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_csrf_header)],
)
def request_triage(
    case_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Re-run classification and matching."""
    if session.role not in ROLES_CAN_MANAGE_CASES:
        raise HTTPException(status_code=403, detail="Not authorized to re-run triage")
    case = _load_case(db, case_id, session)
    try:
        job = case_service.request_triage(db, case, session.user_id)
    except CaseClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return TriageRequested(case_id=case.id, job_id=job.id, triage_status=case.triage_status)


@router.post(
    "/{case_id}/status",
    response_model=CaseRead,
    dependencies=[Depends(require_csrf_header)],
)
def change_case_status(
    case_id: UUID,
    data: CaseStatusUpdate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Hold, resume, complete or cancel a case."""
    case = _load_case(db, case_id, session)
    # Requesters may withdraw their own report; everything else is staff-only
    is_own_cancel = (
        data.status == CaseStatus.CANCELLED and case.reported_by_user_id == session.user_id
    )
    if session.role not in ROLES_CAN_MANAGE_CASES and not is_own_cancel:
        raise HTTPException(status_code=403, detail="Not authorized to change case status")
    try:
        return case_service.change_status(
            db, case, data.status, actor_user_id=session.user_id, reason=data.reason
        )
    except (CaseClosedError, InvalidTransitionError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/{case_id}/guidance", response_model=GuidanceRead)
async def get_guidance(
    case_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    engine: MaintenanceEngine = Depends(get_engine),
):
    """Read-only AI cost/duration estimate."""
    case = _load_case(db, case_id, session)
    return await engine.guidance.get_guidance(case)


# =============================================================================
# Proposals
# =============================================================================


@router.post(
    "/{case_id}/proposals",
    response_model=ProposalRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
def submit_proposal(
    case_id: UUID,
    data: ProposalCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    engine: MaintenanceEngine = Depends(get_engine),
):
    """Provider offers three appointment windows (replaces its pending offer)."""
    case = _load_case(db, case_id, session)
    simulating = settings.ALLOW_ROLE_SIMULATION and session.role in ROLES_CAN_MANAGE_CASES

    own_provider = engine.repository.get_provider_for_user(session.user_id, session.org_id)
    if simulating:
        provider_id = data.provider_id or case.assigned_provider_id
    elif own_provider and data.provider_id in (None, own_provider.id):
        provider_id = own_provider.id
    else:
        raise HTTPException(status_code=403, detail="Only the provider can propose times")
    provider = (
        engine.repository.get_provider(provider_id, session.org_id) if provider_id else None
    )
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")

    try:
        return engine.proposals.submit_proposal(
            case,
            provider,
            data.slots,
            estimated_cost=data.estimated_cost,
            estimated_duration_minutes=data.estimated_duration_minutes,
            notes=data.notes,
            actor_user_id=session.user_id,
            permit_unassigned=simulating,
        )
    except ProposalValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (CaseClosedError, InvalidTransitionError, SelectionConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/{case_id}/proposals", response_model=list[ProposalRead])
def list_proposals(
    case_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    engine: MaintenanceEngine = Depends(get_engine),
):
    case = _load_case(db, case_id, session)
    return engine.proposals.list_proposals(case)


@router.get("/{case_id}/appointments", response_model=list[AppointmentRead])
def list_appointments(
    case_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    engine: MaintenanceEngine = Depends(get_engine),
):
    """Appointments for the case, newest first (superseded ones are Cancelled)."""
    case = _load_case(db, case_id, session)
    return engine.repository.list_appointments(case.id)
