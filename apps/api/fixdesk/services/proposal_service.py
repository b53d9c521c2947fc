"""Proposal workflow - provider slot offers, requester selection, approval hand-off.

A provider submits exactly three non-overlapping windows. Submission replaces
the provider's own pending proposal for the case in a single transaction;
other providers' proposals are never touched. Selecting a slot records the
choice and runs the approval policy, which either confirms the appointment
immediately or leaves the selection pending for manual approval.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from fixdesk.db.enums import (
    CaseEventType,
    CaseStatus,
    ProposalStatus,
    REQUIRED_SLOT_COUNT,
    ROLES_CAN_APPROVE,
    Role,
    SlotStatus,
)
from fixdesk.db.models import Appointment, ApprovalPolicy, Case, Proposal, ProposalSlot, Provider
from fixdesk.db.repository import MaintenanceRepository
from fixdesk.db.types import ensure_utc, utcnow
from fixdesk.schemas.auth import UserSession
from fixdesk.schemas.proposal import SlotWindow
from fixdesk.services import notification_facade
from fixdesk.services.appointment_materializer import AppointmentMaterializer
from fixdesk.services.approval_policy import ApprovalDecision, decide as default_decide
from fixdesk.services.case_lifecycle import CaseLifecycle

logger = logging.getLogger(__name__)

DEFAULT_PROPOSAL_DURATION_MINUTES = 60
DEFAULT_TTL_HOURS = 72
MANUAL_APPROVAL_REASON = "Approved manually by landlord"
MANUAL_DECLINE_REASON = "Declined by landlord"

PolicyDecider = Callable[[ApprovalPolicy | None, Case, Proposal, ProposalSlot], ApprovalDecision]


class ProposalError(Exception):
    """Base exception for proposal workflow errors."""


class ProposalNotFoundError(ProposalError):
    pass


class SlotNotFoundError(ProposalError):
    pass


class ProposalValidationError(ProposalError):
    """Submission rejected; nothing was persisted."""


class AuthorizationError(ProposalError):
    """Principal may not perform this action on the case."""


class SelectionConflictError(ProposalError):
    """A selection already exists, or the proposal changed underneath us."""


class ProposalExpiredError(ProposalError):
    pass


@dataclass
class SelectionOutcome:
    proposal: Proposal
    auto_approved: bool
    reason: str
    appointment: Appointment | None = None

    @property
    def appointment_id(self) -> UUID | None:
        return self.appointment.id if self.appointment else None


class ProposalWorkflow:
    def __init__(
        self,
        repository: MaintenanceRepository,
        lifecycle: CaseLifecycle,
        materializer: AppointmentMaterializer,
        *,
        decide: PolicyDecider = default_decide,
        ttl_hours: int = DEFAULT_TTL_HOURS,
    ):
        self.repository = repository
        self.lifecycle = lifecycle
        self.materializer = materializer
        self.decide = decide
        self.ttl_hours = ttl_hours

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def submit_proposal(
        self,
        case: Case,
        provider: Provider,
        windows: Sequence[SlotWindow],
        *,
        estimated_cost: Decimal | None = None,
        estimated_duration_minutes: int | None = None,
        notes: str | None = None,
        actor_user_id: UUID | None = None,
        permit_unassigned: bool = False,
    ) -> Proposal:
        """
        Replace the provider's pending proposal for the case with a new one.

        Raises:
            ProposalValidationError: wrong provider, slot count or windows
            CaseClosedError / InvalidTransitionError: case cannot take proposals
            SelectionConflictError: a concurrent submission won the race
        """
        self.lifecycle.ensure_open(case)
        if provider.organization_id != case.organization_id:
            raise ProposalValidationError("Provider does not belong to this organization")
        if case.assigned_provider_id != provider.id and not permit_unassigned:
            raise ProposalValidationError("Provider is not assigned to this case")
        slots = validate_windows(windows)
        if estimated_cost is not None and estimated_cost < 0:
            raise ProposalValidationError("Estimated cost cannot be negative")
        self.lifecycle.ensure_can_transition(case, CaseStatus.IN_REVIEW)

        duration = estimated_duration_minutes or _classified_minutes(case) or (
            DEFAULT_PROPOSAL_DURATION_MINUTES
        )

        try:
            superseded = self.repository.get_pending_proposal(case.id, provider.id)
            superseded_id = superseded.id if superseded else None
            if superseded:
                self.repository.delete_proposal(superseded)

            proposal = self.repository.add_proposal(
                Proposal(
                    organization_id=case.organization_id,
                    case_id=case.id,
                    provider_id=provider.id,
                    estimated_cost=estimated_cost,
                    estimated_duration_minutes=duration,
                    notes=notes,
                    status=ProposalStatus.PENDING.value,
                    expires_at=utcnow() + timedelta(hours=self.ttl_hours),
                )
            )
            for slot_number, (start, end) in enumerate(slots, start=1):
                self.repository.add_slot(proposal, slot_number, start, end)

            self.repository.add_case_event(
                case,
                CaseEventType.PROPOSAL_SUBMITTED,
                actor_user_id=actor_user_id,
                details={
                    "proposal_id": str(proposal.id),
                    "provider_id": str(provider.id),
                    "superseded_proposal_id": str(superseded_id) if superseded_id else None,
                },
            )
            self.lifecycle.transition(
                case,
                CaseStatus.IN_REVIEW,
                actor_user_id=actor_user_id,
                reason="Provider proposed appointment times",
            )
            self.repository.commit()
        except IntegrityError as exc:
            self.repository.rollback()
            raise SelectionConflictError(
                "Another proposal from this provider was submitted concurrently"
            ) from exc
        except StaleDataError as exc:
            self.repository.rollback()
            raise SelectionConflictError("Case was modified concurrently") from exc
        except Exception:
            self.repository.rollback()
            raise

        logger.info(
            "Proposal %s submitted for case %s by provider %s (superseded=%s)",
            proposal.id,
            case.id,
            provider.id,
            superseded_id,
        )
        notification_facade.notify_proposal_submitted(self.repository.db, case, proposal)
        return proposal

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select_slot(self, slot_id: UUID, principal: UserSession) -> SelectionOutcome:
        """
        Record the requester's choice and run the approval policy.

        Raises:
            SlotNotFoundError: unknown slot (or another organization's)
            AuthorizationError: principal is neither requester nor owner
            CaseClosedError: case is Completed/Cancelled
            SelectionConflictError: proposal decided, already selected, or raced
            ProposalExpiredError: proposal past its expiry
        """
        slot = self.repository.get_slot(slot_id)
        proposal = (
            self.repository.get_proposal(slot.proposal_id, org_id=principal.org_id)
            if slot
            else None
        )
        if not proposal:
            raise SlotNotFoundError(f"Slot {slot_id} not found")
        case = self.repository.get_case(proposal.case_id, org_id=principal.org_id)
        if not case:
            raise SlotNotFoundError(f"Slot {slot_id} not found")

        if principal.user_id != case.reported_by_user_id and principal.role != Role.OWNER:
            raise AuthorizationError("Only the requester or an owner can select a slot")
        self.lifecycle.ensure_open(case)
        self._ensure_selectable(case, proposal)

        try:
            record_selection(proposal, slot)
            # Writes the case row so a concurrent selection on any of its proposals
            # fails the version check
            case.updated_at = utcnow()
            self.repository.add_case_event(
                case,
                CaseEventType.SLOT_SELECTED,
                actor_user_id=principal.user_id,
                details={"proposal_id": str(proposal.id), "slot_id": str(slot.id)},
            )
            policy = self.repository.get_active_policy(case.organization_id)
            decision = self.decide(policy, case, proposal, slot)

            appointment = None
            if decision.approve:
                appointment = self._confirm(
                    case,
                    proposal,
                    slot,
                    auto_approved=True,
                    reason=decision.reason,
                    actor_user_id=principal.user_id,
                )
            else:
                proposal.auto_approved = False
                proposal.auto_approval_reason = decision.reason
                self.lifecycle.transition(case, CaseStatus.IN_REVIEW, reason=decision.reason)
            self.repository.commit()
        except StaleDataError as exc:
            self.repository.rollback()
            raise SelectionConflictError("Case or proposal was modified concurrently") from exc
        except Exception:
            self.repository.rollback()
            raise

        logger.info(
            "Slot %s selected on case %s: auto_approved=%s (%s)",
            slot.id,
            case.id,
            decision.approve,
            decision.reason,
        )
        if appointment:
            self.materializer.sync_calendar(appointment, case)
            notification_facade.notify_appointment_approved(
                self.repository.db,
                case,
                appointment,
                [case.reported_by_user_id, _provider_user_id(self.repository, proposal)],
            )
        else:
            notification_facade.notify_approval_required(
                self.repository.db,
                case,
                proposal,
                self.repository.list_owner_user_ids(case.organization_id),
            )
        return SelectionOutcome(
            proposal=proposal,
            auto_approved=decision.approve,
            reason=decision.reason,
            appointment=appointment,
        )

    def _ensure_selectable(self, case: Case, proposal: Proposal) -> None:
        if proposal.status != ProposalStatus.PENDING.value:
            raise SelectionConflictError(f"Proposal is already {proposal.status}")
        if proposal.selected_slot_id is not None:
            raise SelectionConflictError("A slot has already been selected for this proposal")
        for other in self.repository.list_proposals(case.id, status=ProposalStatus.PENDING):
            if other.id != proposal.id and other.selected_slot_id is not None:
                raise SelectionConflictError("Another selection is awaiting approval for this case")
        if case.status != CaseStatus.IN_REVIEW.value:
            raise SelectionConflictError(f"Case is {case.status}, not awaiting slot selection")
        if proposal.expires_at and ensure_utc(proposal.expires_at) <= utcnow():
            raise ProposalExpiredError("Proposal has expired; ask the provider for new times")

    # -------------------------------------------------------------------------
    # Manual re-entry
    # -------------------------------------------------------------------------

    def approve_selection(
        self, proposal_id: UUID, principal: UserSession, reason: str | None = None
    ) -> SelectionOutcome:
        """Confirm a deferred selection through the same materialization step."""
        proposal, case, slot = self._load_deferred(proposal_id, principal)
        self.lifecycle.ensure_can_transition(case, CaseStatus.SCHEDULED)
        reason = reason or MANUAL_APPROVAL_REASON

        try:
            appointment = self._confirm(
                case,
                proposal,
                slot,
                auto_approved=False,
                reason=reason,
                actor_user_id=principal.user_id,
            )
            self.repository.commit()
        except StaleDataError as exc:
            self.repository.rollback()
            raise SelectionConflictError("Proposal was modified concurrently") from exc
        except Exception:
            self.repository.rollback()
            raise

        logger.info("Proposal %s approved manually by %s", proposal.id, principal.user_id)
        self.materializer.sync_calendar(appointment, case)
        notification_facade.notify_appointment_approved(
            self.repository.db,
            case,
            appointment,
            [case.reported_by_user_id, _provider_user_id(self.repository, proposal)],
        )
        return SelectionOutcome(
            proposal=proposal, auto_approved=False, reason=reason, appointment=appointment
        )

    def decline_selection(
        self, proposal_id: UUID, principal: UserSession, reason: str | None = None
    ) -> Proposal:
        """Reject a deferred selection; the case waits for new proposals."""
        proposal, case, _ = self._load_deferred(proposal_id, principal)
        reason = reason or MANUAL_DECLINE_REASON

        try:
            proposal.status = ProposalStatus.REJECTED.value
            proposal.auto_approval_reason = reason
            proposal.decided_at = utcnow()
            proposal.decided_by_user_id = principal.user_id
            for slot in proposal.slots:
                slot.status = SlotStatus.RELEASED.value
            self.repository.add_case_event(
                case,
                CaseEventType.APPOINTMENT_DECLINED,
                actor_user_id=principal.user_id,
                reason=reason,
                details={"proposal_id": str(proposal.id)},
            )
            self.repository.commit()
        except StaleDataError as exc:
            self.repository.rollback()
            raise SelectionConflictError("Proposal was modified concurrently") from exc
        except Exception:
            self.repository.rollback()
            raise

        logger.info("Proposal %s declined by %s", proposal.id, principal.user_id)
        notification_facade.notify_appointment_declined(
            self.repository.db,
            case,
            proposal,
            [case.reported_by_user_id, _provider_user_id(self.repository, proposal)],
        )
        return proposal

    def _load_deferred(
        self, proposal_id: UUID, principal: UserSession
    ) -> tuple[Proposal, Case, ProposalSlot]:
        if principal.role not in ROLES_CAN_APPROVE:
            raise AuthorizationError("Only owners and managers can decide on appointments")
        proposal = self.repository.get_proposal(proposal_id, org_id=principal.org_id)
        if not proposal:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found")
        case = self.repository.get_case(proposal.case_id, org_id=principal.org_id)
        if not case:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found")
        self.lifecycle.ensure_open(case)
        if proposal.status != ProposalStatus.PENDING.value or proposal.selected_slot_id is None:
            raise SelectionConflictError("No selection is awaiting approval on this proposal")
        slot = next((s for s in proposal.slots if s.id == proposal.selected_slot_id), None)
        if slot is None:
            raise SlotNotFoundError(f"Selected slot {proposal.selected_slot_id} not found")
        return proposal, case, slot

    # -------------------------------------------------------------------------
    # Shared confirmation step
    # -------------------------------------------------------------------------

    def _confirm(
        self,
        case: Case,
        proposal: Proposal,
        slot: ProposalSlot,
        *,
        auto_approved: bool,
        reason: str,
        actor_user_id: UUID | None,
    ) -> Appointment:
        provider = self.repository.get_provider(proposal.provider_id)
        if provider is None:
            raise ProposalNotFoundError(f"Provider {proposal.provider_id} not found")

        proposal.status = ProposalStatus.ACCEPTED.value
        proposal.auto_approved = auto_approved
        proposal.auto_approval_reason = reason
        proposal.decided_at = utcnow()
        proposal.decided_by_user_id = None if auto_approved else actor_user_id

        appointment = self.materializer.materialize(case, provider, slot, proposal=proposal)
        self.lifecycle.transition(
            case, CaseStatus.SCHEDULED, actor_user_id=actor_user_id, reason=reason
        )
        self.repository.add_case_event(
            case,
            CaseEventType.APPOINTMENT_APPROVED,
            actor_user_id=actor_user_id,
            reason=reason,
            details={"appointment_id": str(appointment.id), "auto_approved": auto_approved},
        )
        return appointment

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_proposals(self, case: Case) -> list[Proposal]:
        return self.repository.list_proposals(case.id)


# =============================================================================
# Helpers
# =============================================================================

def validate_windows(windows: Sequence[SlotWindow]) -> list[tuple[datetime, datetime]]:
    """Exactly three positive, pairwise non-overlapping windows (UTC, input order)."""
    if len(windows) != REQUIRED_SLOT_COUNT:
        raise ProposalValidationError(
            f"Exactly {REQUIRED_SLOT_COUNT} time slots are required (got {len(windows)})"
        )
    slots = [(ensure_utc(w.start_time), ensure_utc(w.end_time)) for w in windows]
    for index, (start, end) in enumerate(slots, start=1):
        if end <= start:
            raise ProposalValidationError(f"Slot {index} must end after it starts")

    ordered = sorted(slots)
    for (_, previous_end), (next_start, _) in zip(ordered, ordered[1:]):
        if next_start < previous_end:
            raise ProposalValidationError("Proposed time slots must not overlap")
    return slots


def record_selection(proposal: Proposal, slot: ProposalSlot) -> None:
    proposal.selected_slot_id = slot.id
    for candidate in proposal.slots:
        if candidate.id == slot.id:
            candidate.status = SlotStatus.SELECTED.value
        else:
            candidate.status = SlotStatus.RELEASED.value


def _classified_minutes(case: Case) -> int | None:
    minutes = (case.classification or {}).get("estimated_duration_minutes")
    return minutes if isinstance(minutes, int) and minutes > 0 else None


def _provider_user_id(repository: MaintenanceRepository, proposal: Proposal) -> UUID | None:
    provider = repository.get_provider(proposal.provider_id)
    return provider.user_id if provider else None
