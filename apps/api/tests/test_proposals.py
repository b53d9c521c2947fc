"""
Tests for the proposal workflow.

Coverage:
- Submission: validation, supersede, atomic rollback, coexisting providers
- Selection: authorization, conflicts, expiry, closed cases
- Approval hand-off: auto-approve, deferral, manual approve / decline
- Rescheduling
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from fixdesk.db.enums import (
    AppointmentStatus,
    CaseEventType,
    CaseStatus,
    JobType,
    NotificationEvent,
    ProposalStatus,
    Role,
    SlotStatus,
)
from fixdesk.db.models import Appointment, Case, CaseEvent, Job, Proposal, ProposalSlot
from fixdesk.db.repository import MaintenanceRepository
from fixdesk.db.types import ensure_utc, utcnow
from fixdesk.schemas.policy import ApprovalPolicyUpsert
from fixdesk.services import policy_service
from fixdesk.services.appointment_materializer import AppointmentMaterializer
from fixdesk.services.approval_policy import NO_POLICY_REASON, ApprovalDecision
from fixdesk.services.case_lifecycle import CaseClosedError, CaseLifecycle
from fixdesk.services.proposal_service import (
    MANUAL_APPROVAL_REASON,
    AuthorizationError,
    ProposalExpiredError,
    ProposalValidationError,
    ProposalWorkflow,
    SelectionConflictError,
    SlotNotFoundError,
)


# =============================================================================
# Fixtures / helpers
# =============================================================================

@pytest.fixture
def assigned_case(make_case, plumber):
    return make_case(assigned_provider=plumber)


@pytest.fixture
def balanced_policy(db, test_org, owner_user):
    return policy_service.set_active_policy(
        db,
        test_org.id,
        ApprovalPolicyUpsert(
            name="Balanced",
            involvement_mode="balanced",
            cost_threshold=Decimal("300"),
            preferred_start_hour=8,
            preferred_end_hour=18,
            timezone="UTC",
        ),
        owner_user.id,
    )


def _submit(engine, case, provider, windows, cost="250", **kwargs):
    return engine.proposals.submit_proposal(
        case,
        provider,
        windows,
        estimated_cost=Decimal(cost) if cost is not None else None,
        **kwargs,
    )


def _events(db, case, event_type: CaseEventType) -> list[CaseEvent]:
    return (
        db.query(CaseEvent)
        .filter(CaseEvent.case_id == case.id, CaseEvent.event_type == event_type.value)
        .all()
    )


def _notifications(db, event: NotificationEvent) -> list[Job]:
    jobs = db.query(Job).filter(Job.job_type == JobType.NOTIFICATION.value).all()
    return [job for job in jobs if job.payload["event"] == event.value]


# =============================================================================
# Submission
# =============================================================================

def test_submit_creates_pending_proposal(db, engine, assigned_case, plumber, windows, tenant_user):
    proposal = _submit(engine, assigned_case, plumber, windows, notes="Bring a new trap")

    assert proposal.status == ProposalStatus.PENDING.value
    assert [s.slot_number for s in proposal.slots] == [1, 2, 3]
    assert all(s.status == SlotStatus.PROPOSED.value for s in proposal.slots)
    assert ensure_utc(proposal.slots[0].start_time) == windows[0].start_time
    assert proposal.estimated_duration_minutes == 60
    assert ensure_utc(proposal.expires_at) > utcnow() + timedelta(hours=71)
    assert assigned_case.status == CaseStatus.IN_REVIEW.value
    assert len(_events(db, assigned_case, CaseEventType.PROPOSAL_SUBMITTED)) == 1

    (job,) = _notifications(db, NotificationEvent.PROPOSAL_SUBMITTED)
    assert job.payload["recipient_user_ids"] == [str(tenant_user.id)]


def test_submit_uses_classified_duration(db, engine, assigned_case, plumber, windows):
    assigned_case.classification = {"estimated_duration_minutes": 90}
    db.commit()

    proposal = _submit(engine, assigned_case, plumber, windows)

    assert proposal.estimated_duration_minutes == 90


def test_resubmit_replaces_own_pending_proposal(db, engine, assigned_case, plumber, window_factory):
    first = _submit(engine, assigned_case, plumber, window_factory())
    first_id = first.id

    second = _submit(engine, assigned_case, plumber, window_factory(days_ahead=4), cost="180")

    pending = db.query(Proposal).filter(Proposal.case_id == assigned_case.id).all()
    assert [p.id for p in pending] == [second.id]
    assert db.query(ProposalSlot).filter(ProposalSlot.proposal_id == first_id).count() == 0
    superseded = [
        e.details["superseded_proposal_id"]
        for e in _events(db, assigned_case, CaseEventType.PROPOSAL_SUBMITTED)
    ]
    assert sorted(superseded, key=str) == sorted([None, str(first_id)], key=str)


def test_other_providers_proposals_are_kept(db, engine, assigned_case, plumber, electrician, windows):
    mine = _submit(engine, assigned_case, plumber, windows)
    theirs = _submit(engine, assigned_case, electrician, windows, permit_unassigned=True)

    pending = engine.proposals.list_proposals(assigned_case)

    assert {p.id for p in pending} == {mine.id, theirs.id}


def test_unassigned_provider_is_rejected(engine, assigned_case, electrician, windows):
    with pytest.raises(ProposalValidationError, match="not assigned"):
        _submit(engine, assigned_case, electrician, windows)


@pytest.mark.parametrize("failing_slot", [2, 3])
def test_submission_is_atomic(db, assigned_case, plumber, windows, failing_slot):
    class FailingRepository(MaintenanceRepository):
        def add_slot(self, proposal, slot_number, start_time, end_time):
            if slot_number == failing_slot:
                raise RuntimeError("storage unavailable")
            return super().add_slot(proposal, slot_number, start_time, end_time)

    repository = FailingRepository(db)
    workflow = ProposalWorkflow(
        repository, CaseLifecycle(repository), AppointmentMaterializer(repository)
    )

    with pytest.raises(RuntimeError):
        workflow.submit_proposal(assigned_case, plumber, windows)

    assert db.query(Proposal).count() == 0
    assert db.query(ProposalSlot).count() == 0
    db.refresh(assigned_case)
    assert assigned_case.status == CaseStatus.NEW.value
    assert _events(db, assigned_case, CaseEventType.PROPOSAL_SUBMITTED) == []


def test_failed_resubmit_keeps_previous_proposal(db, engine, assigned_case, plumber, windows):
    original = _submit(engine, assigned_case, plumber, windows)
    original_id = original.id

    class FailingRepository(MaintenanceRepository):
        def add_slot(self, proposal, slot_number, start_time, end_time):
            raise RuntimeError("storage unavailable")

    repository = FailingRepository(db)
    workflow = ProposalWorkflow(
        repository, CaseLifecycle(repository), AppointmentMaterializer(repository)
    )
    with pytest.raises(RuntimeError):
        workflow.submit_proposal(assigned_case, plumber, windows)

    remaining = db.query(Proposal).all()
    assert [p.id for p in remaining] == [original_id]
    assert len(remaining[0].slots) == 3


def test_wrong_slot_count(engine, assigned_case, plumber, windows):
    with pytest.raises(ProposalValidationError, match="Exactly 3"):
        _submit(engine, assigned_case, plumber, windows[:2])


def test_overlapping_windows(engine, assigned_case, plumber, window_factory):
    with pytest.raises(ProposalValidationError, match="overlap"):
        _submit(engine, assigned_case, plumber, window_factory((10, 11, 16)))


def test_touching_windows_are_allowed(engine, assigned_case, plumber, window_factory):
    proposal = _submit(engine, assigned_case, plumber, window_factory((10, 12, 14)))
    assert len(proposal.slots) == 3


def test_window_must_end_after_start(engine, assigned_case, plumber, windows):
    windows[1] = windows[1].model_copy(update={"end_time": windows[1].start_time})
    with pytest.raises(ProposalValidationError, match="Slot 2 must end after it starts"):
        _submit(engine, assigned_case, plumber, windows)


def test_negative_cost_is_rejected(engine, assigned_case, plumber, windows):
    with pytest.raises(ProposalValidationError):
        _submit(engine, assigned_case, plumber, windows, cost="-5")


@pytest.mark.parametrize("status", [CaseStatus.COMPLETED, CaseStatus.CANCELLED])
def test_closed_case_rejects_proposals(engine, make_case, plumber, windows, status):
    case = make_case(status=status, assigned_provider=plumber)
    with pytest.raises(CaseClosedError):
        _submit(engine, case, plumber, windows)


# =============================================================================
# Selection with auto-approval
# =============================================================================

def test_select_auto_approves_within_policy(
    db, engine, assigned_case, plumber, windows, balanced_policy, tenant_session,
    tenant_user, contractor_user,
):
    proposal = _submit(engine, assigned_case, plumber, windows, cost="250")
    slot_id = proposal.slots[1].id

    outcome = engine.proposals.select_slot(slot_id, tenant_session)

    assert outcome.auto_approved
    assert "all balanced gates passed" in outcome.reason
    appointment = outcome.appointment
    assert appointment.status == AppointmentStatus.CONFIRMED.value
    assert appointment.slot_id == slot_id
    assert appointment.provider_id == plumber.id
    assert ensure_utc(appointment.scheduled_start) == windows[1].start_time
    assert appointment.title == "Kitchen sink leaking - Pat's Plumbing"
    assert appointment.external_event_id is None
    assert appointment.calendar_sync_error is None

    db.refresh(proposal)
    assert proposal.status == ProposalStatus.ACCEPTED.value
    assert proposal.auto_approved
    assert proposal.selected_slot_id == slot_id
    assert proposal.decided_by_user_id is None
    statuses = {s.id: s.status for s in proposal.slots}
    assert statuses[slot_id] == SlotStatus.SELECTED.value
    assert list(statuses.values()).count(SlotStatus.RELEASED.value) == 2

    db.refresh(assigned_case)
    assert assigned_case.status == CaseStatus.SCHEDULED.value
    assert len(_events(db, assigned_case, CaseEventType.SLOT_SELECTED)) == 1
    assert len(_events(db, assigned_case, CaseEventType.APPOINTMENT_APPROVED)) == 1

    (job,) = _notifications(db, NotificationEvent.APPOINTMENT_APPROVED)
    assert job.payload["recipient_user_ids"] == sorted(
        [str(tenant_user.id), str(contractor_user.id)]
    )


@pytest.mark.parametrize("cost, approved", [("250", True), ("400", False)])
def test_high_urgency_trusted_provider_scenario(
    db, engine, test_org, owner_user, make_case, plumber, windows, tenant_session, cost, approved
):
    policy_service.set_active_policy(
        db,
        test_org.id,
        ApprovalPolicyUpsert(
            cost_threshold=Decimal("300"),
            preferred_start_hour=9,
            preferred_end_hour=17,
            trusted_provider_ids=[plumber.id],
            urgency_gate="High",
            timezone="UTC",
        ),
        owner_user.id,
    )
    case = make_case(urgency="High", assigned_provider=plumber)
    proposal = _submit(engine, case, plumber, windows, cost=cost)

    outcome = engine.proposals.select_slot(proposal.slots[0].id, tenant_session)

    assert outcome.auto_approved is approved
    assert (outcome.appointment_id is not None) is approved
    db.refresh(case)
    expected = CaseStatus.SCHEDULED if approved else CaseStatus.IN_REVIEW
    assert case.status == expected.value


def test_select_defers_when_cost_exceeds_threshold(
    db, engine, assigned_case, plumber, windows, balanced_policy, tenant_session, owner_user
):
    proposal = _submit(engine, assigned_case, plumber, windows, cost="400")
    slot_id = proposal.slots[0].id

    outcome = engine.proposals.select_slot(slot_id, tenant_session)

    assert not outcome.auto_approved
    assert outcome.appointment is None
    assert outcome.reason == (
        "Manual approval required: estimated cost $400.00 exceeds threshold $300.00"
    )
    db.refresh(proposal)
    assert proposal.status == ProposalStatus.PENDING.value
    assert proposal.selected_slot_id == slot_id
    assert proposal.auto_approval_reason == outcome.reason
    assert assigned_case.status == CaseStatus.IN_REVIEW.value
    assert db.query(Appointment).count() == 0

    (job,) = _notifications(db, NotificationEvent.APPROVAL_REQUIRED)
    assert job.payload["recipient_user_ids"] == [str(owner_user.id)]


def test_select_without_policy_defers(engine, assigned_case, plumber, windows, tenant_session):
    proposal = _submit(engine, assigned_case, plumber, windows)

    outcome = engine.proposals.select_slot(proposal.slots[0].id, tenant_session)

    assert not outcome.auto_approved
    assert outcome.reason == NO_POLICY_REASON


def test_owner_can_select_for_tenant(
    engine, assigned_case, plumber, windows, balanced_policy, owner_session
):
    proposal = _submit(engine, assigned_case, plumber, windows)
    outcome = engine.proposals.select_slot(proposal.slots[2].id, owner_session)
    assert outcome.auto_approved


# =============================================================================
# Selection guards
# =============================================================================

def test_contractor_cannot_select(engine, assigned_case, plumber, windows, contractor_session):
    proposal = _submit(engine, assigned_case, plumber, windows)
    with pytest.raises(AuthorizationError):
        engine.proposals.select_slot(proposal.slots[0].id, contractor_session)


def test_other_tenant_cannot_select(
    engine, assigned_case, plumber, windows, other_tenant_user, principal_for
):
    proposal = _submit(engine, assigned_case, plumber, windows)
    with pytest.raises(AuthorizationError):
        engine.proposals.select_slot(
            proposal.slots[0].id, principal_for(other_tenant_user, Role.TENANT)
        )


def test_slot_from_other_org_is_not_found(engine, assigned_case, plumber, windows, tenant_session):
    proposal = _submit(engine, assigned_case, plumber, windows)
    outsider = tenant_session.model_copy(update={"org_id": plumber.id})
    with pytest.raises(SlotNotFoundError):
        engine.proposals.select_slot(proposal.slots[0].id, outsider)


def test_select_on_cancelled_case(db, engine, assigned_case, plumber, windows, tenant_session):
    proposal = _submit(engine, assigned_case, plumber, windows)
    engine.lifecycle.transition(assigned_case, CaseStatus.CANCELLED)
    db.commit()

    with pytest.raises(CaseClosedError):
        engine.proposals.select_slot(proposal.slots[0].id, tenant_session)
    assert db.query(Appointment).count() == 0


def test_second_selection_conflicts(engine, assigned_case, plumber, windows, tenant_session):
    proposal = _submit(engine, assigned_case, plumber, windows)
    engine.proposals.select_slot(proposal.slots[0].id, tenant_session)

    with pytest.raises(SelectionConflictError):
        engine.proposals.select_slot(proposal.slots[1].id, tenant_session)


def test_selection_after_auto_approval_conflicts(
    engine, assigned_case, plumber, windows, balanced_policy, tenant_session
):
    proposal = _submit(engine, assigned_case, plumber, windows)
    engine.proposals.select_slot(proposal.slots[0].id, tenant_session)

    with pytest.raises(SelectionConflictError):
        engine.proposals.select_slot(proposal.slots[1].id, tenant_session)


def test_only_one_selection_per_case(
    engine, assigned_case, plumber, electrician, windows, tenant_session
):
    mine = _submit(engine, assigned_case, plumber, windows)
    theirs = _submit(engine, assigned_case, electrician, windows, permit_unassigned=True)
    engine.proposals.select_slot(mine.slots[0].id, tenant_session)

    with pytest.raises(SelectionConflictError, match="awaiting approval"):
        engine.proposals.select_slot(theirs.slots[0].id, tenant_session)


def test_expired_proposal(db, engine, assigned_case, plumber, windows, tenant_session):
    proposal = _submit(engine, assigned_case, plumber, windows)
    proposal.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(ProposalExpiredError):
        engine.proposals.select_slot(proposal.slots[0].id, tenant_session)


def test_concurrent_modification_is_a_conflict(
    db, engine, assigned_case, plumber, windows, tenant_session
):
    proposal = _submit(engine, assigned_case, plumber, windows)

    def racing_decide(policy, case, selected_proposal, slot):
        # Another writer commits first and bumps the version
        db.execute(
            update(Proposal)
            .where(Proposal.id == selected_proposal.id)
            .values(version=Proposal.version + 1)
            .execution_options(synchronize_session=False)
        )
        return ApprovalDecision(approve=False, reason="Manual approval required: test")

    workflow = ProposalWorkflow(
        engine.repository, engine.lifecycle, engine.materializer, decide=racing_decide
    )

    with pytest.raises(SelectionConflictError):
        workflow.select_slot(proposal.slots[0].id, tenant_session)

    db.refresh(proposal)
    assert proposal.selected_slot_id is None


@pytest.mark.parametrize("approve", [True, False])
def test_selection_race_across_proposals_is_a_conflict(
    db, engine, assigned_case, plumber, electrician, windows, tenant_session, approve
):
    mine = _submit(engine, assigned_case, plumber, windows)
    theirs = _submit(engine, assigned_case, electrician, windows, permit_unassigned=True)
    their_slot_id = theirs.slots[0].id

    def competing_selection(policy, case, selected_proposal, slot):
        # A selection on the other provider's proposal commits first
        db.execute(
            update(Proposal)
            .where(Proposal.id == theirs.id)
            .values(selected_slot_id=their_slot_id, version=Proposal.version + 1)
            .execution_options(synchronize_session=False)
        )
        db.execute(
            update(Case)
            .where(Case.id == case.id)
            .values(version=Case.version + 1)
            .execution_options(synchronize_session=False)
        )
        return ApprovalDecision(approve=approve, reason="Auto-approved: test")

    workflow = ProposalWorkflow(
        engine.repository, engine.lifecycle, engine.materializer, decide=competing_selection
    )

    with pytest.raises(SelectionConflictError, match="modified concurrently"):
        workflow.select_slot(mine.slots[0].id, tenant_session)

    assert db.query(Appointment).filter(Appointment.case_id == assigned_case.id).count() == 0
    db.refresh(mine)
    assert mine.selected_slot_id is None
    assert mine.status == ProposalStatus.PENDING.value
    db.refresh(assigned_case)
    assert assigned_case.status == CaseStatus.IN_REVIEW.value


def test_selection_bumps_case_version(engine, assigned_case, plumber, windows, tenant_session):
    proposal = _submit(engine, assigned_case, plumber, windows, cost="400")
    before = assigned_case.version

    engine.proposals.select_slot(proposal.slots[0].id, tenant_session)

    assert assigned_case.version == before + 1


# =============================================================================
# Manual approve / decline
# =============================================================================

@pytest.fixture
def deferred(engine, assigned_case, plumber, windows, tenant_session):
    proposal = _submit(engine, assigned_case, plumber, windows, cost="400")
    engine.proposals.select_slot(proposal.slots[0].id, tenant_session)
    return proposal


def test_manual_approval_materializes(db, engine, assigned_case, deferred, owner_session, owner_user):
    outcome = engine.proposals.approve_selection(deferred.id, owner_session)

    assert not outcome.auto_approved
    assert outcome.reason == MANUAL_APPROVAL_REASON
    assert outcome.appointment.status == AppointmentStatus.CONFIRMED.value
    db.refresh(deferred)
    assert deferred.status == ProposalStatus.ACCEPTED.value
    assert deferred.decided_by_user_id == owner_user.id
    db.refresh(assigned_case)
    assert assigned_case.status == CaseStatus.SCHEDULED.value


def test_tenant_cannot_approve(engine, deferred, tenant_session):
    with pytest.raises(AuthorizationError):
        engine.proposals.approve_selection(deferred.id, tenant_session)


def test_approve_requires_pending_selection(engine, assigned_case, plumber, windows, owner_session):
    proposal = _submit(engine, assigned_case, plumber, windows)
    with pytest.raises(SelectionConflictError):
        engine.proposals.approve_selection(proposal.id, owner_session)


def test_decline_releases_selection(db, engine, assigned_case, deferred, owner_session, tenant_session):
    declined = engine.proposals.decline_selection(deferred.id, owner_session, reason="Too pricey")

    assert declined.status == ProposalStatus.REJECTED.value
    assert declined.auto_approval_reason == "Too pricey"
    assert all(s.status == SlotStatus.RELEASED.value for s in declined.slots)
    db.refresh(assigned_case)
    assert assigned_case.status == CaseStatus.IN_REVIEW.value
    assert len(_events(db, assigned_case, CaseEventType.APPOINTMENT_DECLINED)) == 1

    with pytest.raises(SelectionConflictError):
        engine.proposals.select_slot(deferred.slots[1].id, tenant_session)


def test_decline_then_approve_conflicts(engine, deferred, owner_session):
    engine.proposals.decline_selection(deferred.id, owner_session)
    with pytest.raises(SelectionConflictError):
        engine.proposals.approve_selection(deferred.id, owner_session)


# =============================================================================
# Rescheduling
# =============================================================================

def test_reschedule_replaces_active_appointment(
    db, engine, test_org, owner_user, assigned_case, plumber, window_factory, tenant_session
):
    policy_service.set_active_policy(
        db, test_org.id, ApprovalPolicyUpsert(involvement_mode="hands-off"), owner_user.id
    )
    first = _submit(engine, assigned_case, plumber, window_factory())
    original = engine.proposals.select_slot(first.slots[0].id, tenant_session).appointment
    original_id = original.id

    second = _submit(engine, assigned_case, plumber, window_factory(days_ahead=5))
    db.refresh(assigned_case)
    assert assigned_case.status == CaseStatus.IN_REVIEW.value

    replacement = engine.proposals.select_slot(second.slots[0].id, tenant_session).appointment

    active = (
        db.query(Appointment)
        .filter(Appointment.case_id == assigned_case.id)
        .filter(Appointment.status == AppointmentStatus.CONFIRMED.value)
        .all()
    )
    assert [a.id for a in active] == [replacement.id]
    cancelled = db.query(Appointment).filter(Appointment.id == original_id).one()
    assert cancelled.status == AppointmentStatus.CANCELLED.value
    assert cancelled.cancelled_at is not None
    db.refresh(assigned_case)
    assert assigned_case.status == CaseStatus.SCHEDULED.value
