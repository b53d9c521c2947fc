"""Narrow persistence interface consumed by the triage/scheduling components.

Components receive a repository instance instead of reaching for a global
session, so each request or job wires its own.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from fixdesk.db.enums import (
    ACTIVE_APPOINTMENT_STATUSES,
    CaseEventType,
    OPEN_CASE_STATUSES,
    ProposalStatus,
    Role,
)
from fixdesk.db.models import (
    Appointment,
    ApprovalPolicy,
    Case,
    CaseEvent,
    Membership,
    Organization,
    Proposal,
    ProposalSlot,
    Provider,
)


class MaintenanceRepository:
    """SQLAlchemy-backed repository; one instance per session."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, instance) -> None:
        self.db.refresh(instance)

    # -------------------------------------------------------------------------
    # Cases
    # -------------------------------------------------------------------------

    def get_case(self, case_id: UUID, org_id: UUID | None = None) -> Case | None:
        query = self.db.query(Case).filter(Case.id == case_id)
        if org_id:
            query = query.filter(Case.organization_id == org_id)
        return query.first()

    def add_case(self, case: Case) -> Case:
        self.db.add(case)
        self.db.flush()
        return case

    def add_case_event(
        self,
        case: Case,
        event_type: CaseEventType,
        *,
        from_status: str | None = None,
        to_status: str | None = None,
        actor_user_id: UUID | None = None,
        reason: str | None = None,
        details: dict | None = None,
    ) -> CaseEvent:
        event = CaseEvent(
            case_id=case.id,
            organization_id=case.organization_id,
            event_type=event_type.value,
            from_status=from_status,
            to_status=to_status,
            actor_user_id=actor_user_id,
            reason=reason,
            details=details or {},
        )
        self.db.add(event)
        return event

    # -------------------------------------------------------------------------
    # Providers
    # -------------------------------------------------------------------------

    def get_provider(self, provider_id: UUID, org_id: UUID | None = None) -> Provider | None:
        query = self.db.query(Provider).filter(Provider.id == provider_id)
        if org_id:
            query = query.filter(Provider.organization_id == org_id)
        return query.first()

    def get_provider_for_user(self, user_id: UUID, org_id: UUID) -> Provider | None:
        return (
            self.db.query(Provider)
            .filter(Provider.user_id == user_id, Provider.organization_id == org_id)
            .first()
        )

    def list_active_providers(self, org_id: UUID) -> list[Provider]:
        return (
            self.db.query(Provider)
            .filter(
                Provider.organization_id == org_id,
                Provider.is_active_contractor.is_(True),
            )
            .order_by(Provider.id)
            .all()
        )

    def get_provider_workloads(self, provider_ids: list[UUID]) -> dict[UUID, int]:
        """Point-in-time count of open cases per provider (missing = 0)."""
        if not provider_ids:
            return {}
        rows = (
            self.db.query(Case.assigned_provider_id, func.count(Case.id))
            .filter(
                Case.assigned_provider_id.in_(provider_ids),
                Case.status.in_([s.value for s in OPEN_CASE_STATUSES]),
            )
            .group_by(Case.assigned_provider_id)
            .all()
        )
        workloads = {provider_id: 0 for provider_id in provider_ids}
        workloads.update({provider_id: count for provider_id, count in rows})
        return workloads

    # -------------------------------------------------------------------------
    # Proposals and slots
    # -------------------------------------------------------------------------

    def get_proposal(self, proposal_id: UUID, org_id: UUID | None = None) -> Proposal | None:
        query = (
            self.db.query(Proposal)
            .options(selectinload(Proposal.slots))
            .filter(Proposal.id == proposal_id)
        )
        if org_id:
            query = query.filter(Proposal.organization_id == org_id)
        return query.first()

    def get_pending_proposal(self, case_id: UUID, provider_id: UUID) -> Proposal | None:
        return (
            self.db.query(Proposal)
            .filter(
                Proposal.case_id == case_id,
                Proposal.provider_id == provider_id,
                Proposal.status == ProposalStatus.PENDING.value,
            )
            .first()
        )

    def list_proposals(
        self, case_id: UUID, status: ProposalStatus | None = None
    ) -> list[Proposal]:
        query = (
            self.db.query(Proposal)
            .options(selectinload(Proposal.slots))
            .filter(Proposal.case_id == case_id)
        )
        if status:
            query = query.filter(Proposal.status == status.value)
        return query.order_by(Proposal.created_at.desc(), Proposal.id).all()

    def add_proposal(self, proposal: Proposal) -> Proposal:
        self.db.add(proposal)
        self.db.flush()
        return proposal

    def add_slot(
        self,
        proposal: Proposal,
        slot_number: int,
        start_time: datetime,
        end_time: datetime,
    ) -> ProposalSlot:
        slot = ProposalSlot(
            proposal_id=proposal.id,
            slot_number=slot_number,
            start_time=start_time,
            end_time=end_time,
        )
        proposal.slots.append(slot)
        self.db.flush()
        return slot

    def delete_proposal(self, proposal: Proposal) -> None:
        """Delete a proposal, slots first."""
        self.db.query(ProposalSlot).filter(ProposalSlot.proposal_id == proposal.id).delete(
            synchronize_session="fetch"
        )
        self.db.expire(proposal, ["slots"])
        self.db.delete(proposal)
        self.db.flush()

    def get_slot(self, slot_id: UUID) -> ProposalSlot | None:
        return self.db.query(ProposalSlot).filter(ProposalSlot.id == slot_id).first()

    # -------------------------------------------------------------------------
    # Appointments
    # -------------------------------------------------------------------------

    def list_appointments(self, case_id: UUID) -> list[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(Appointment.case_id == case_id)
            .order_by(Appointment.created_at.desc(), Appointment.id)
            .all()
        )

    def list_active_appointments(self, case_id: UUID) -> list[Appointment]:
        return (
            self.db.query(Appointment)
            .filter(
                Appointment.case_id == case_id,
                Appointment.status.in_([s.value for s in ACTIVE_APPOINTMENT_STATUSES]),
            )
            .all()
        )

    def add_appointment(self, appointment: Appointment) -> Appointment:
        self.db.add(appointment)
        self.db.flush()
        return appointment

    # -------------------------------------------------------------------------
    # Policies and principals
    # -------------------------------------------------------------------------

    def get_active_policy(self, org_id: UUID) -> ApprovalPolicy | None:
        """The organization's active policy (most recently created wins)."""
        return (
            self.db.query(ApprovalPolicy)
            .filter(
                ApprovalPolicy.organization_id == org_id,
                ApprovalPolicy.is_active.is_(True),
            )
            .order_by(ApprovalPolicy.created_at.desc(), ApprovalPolicy.id)
            .first()
        )

    def get_organization(self, org_id: UUID) -> Organization | None:
        return self.db.query(Organization).filter(Organization.id == org_id).first()

    def list_owner_user_ids(self, org_id: UUID) -> list[UUID]:
        rows = (
            self.db.query(Membership.user_id)
            .filter(
                Membership.organization_id == org_id,
                Membership.role == Role.OWNER.value,
            )
            .all()
        )
        return [row[0] for row in rows]
