"""Slot selection and manual approval endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from fixdesk.core.deps import get_current_session, get_engine, require_csrf_header
from fixdesk.schemas.auth import UserSession
from fixdesk.schemas.proposal import ProposalDecision, ProposalRead, SlotSelectionResult
from fixdesk.services.case_lifecycle import CaseClosedError, InvalidTransitionError
from fixdesk.services.engine import MaintenanceEngine
from fixdesk.services.proposal_service import (
    AuthorizationError,
    ProposalError,
    ProposalExpiredError,
    ProposalNotFoundError,
    SelectionConflictError,
    SelectionOutcome,
    SlotNotFoundError,
)

router = APIRouter(dependencies=[Depends(require_csrf_header)])


def _to_http(exc: Exception) -> HTTPException:
    if isinstance(exc, (ProposalNotFoundError, SlotNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(
        exc,
        (SelectionConflictError, ProposalExpiredError, CaseClosedError, InvalidTransitionError),
    ):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _to_result(outcome: SelectionOutcome) -> SlotSelectionResult:
    if outcome.auto_approved:
        message = "Appointment confirmed"
    elif outcome.appointment:
        message = "Appointment approved"
    else:
        message = "Selection recorded; awaiting landlord approval"
    return SlotSelectionResult(
        proposal_id=outcome.proposal.id,
        auto_approved=outcome.auto_approved,
        appointment_id=outcome.appointment_id,
        reason=outcome.reason,
        message=message,
    )


@router.post("/slots/{slot_id}/select", response_model=SlotSelectionResult)
def select_slot(
    slot_id: UUID,
    session: UserSession = Depends(get_current_session),
    engine: MaintenanceEngine = Depends(get_engine),
):
    """Pick one proposed slot; the approval policy decides whether it is confirmed now."""
    try:
        outcome = engine.proposals.select_slot(slot_id, session)
    except (ProposalError, CaseClosedError, InvalidTransitionError) as e:
        raise _to_http(e)
    return _to_result(outcome)


@router.post("/{proposal_id}/approve", response_model=SlotSelectionResult)
def approve_selection(
    proposal_id: UUID,
    data: ProposalDecision | None = None,
    session: UserSession = Depends(get_current_session),
    engine: MaintenanceEngine = Depends(get_engine),
):
    try:
        outcome = engine.proposals.approve_selection(
            proposal_id, session, reason=data.reason if data else None
        )
    except (ProposalError, CaseClosedError, InvalidTransitionError) as e:
        raise _to_http(e)
    return _to_result(outcome)


@router.post("/{proposal_id}/decline", response_model=ProposalRead)
def decline_selection(
    proposal_id: UUID,
    data: ProposalDecision | None = None,
    session: UserSession = Depends(get_current_session),
    engine: MaintenanceEngine = Depends(get_engine),
):
    try:
        return engine.proposals.decline_selection(
            proposal_id, session, reason=data.reason if data else None
        )
    except (ProposalError, CaseClosedError, InvalidTransitionError) as e:
        raise _to_http(e)
