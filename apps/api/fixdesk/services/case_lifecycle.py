"""Case lifecycle - the authoritative state machine for maintenance cases.

Every status change goes through CaseLifecycle.transition so that the
allowed-transition table, history rows and cancellation hooks are applied
in one place. Nothing here commits; callers own the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Sequence
from uuid import UUID

from fixdesk.db.enums import (
    AppointmentStatus,
    CaseEventType,
    CaseStatus,
    ProposalStatus,
    SlotStatus,
    TERMINAL_CASE_STATUSES,
)
from fixdesk.db.models import Case
from fixdesk.db.repository import MaintenanceRepository

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[CaseStatus, frozenset[CaseStatus]] = {
    CaseStatus.NEW: frozenset({CaseStatus.IN_REVIEW, CaseStatus.CANCELLED}),
    CaseStatus.IN_REVIEW: frozenset(
        {CaseStatus.SCHEDULED, CaseStatus.ON_HOLD, CaseStatus.CANCELLED}
    ),
    CaseStatus.SCHEDULED: frozenset(
        {
            CaseStatus.IN_REVIEW,  # Provider proposes new slots (reschedule)
            CaseStatus.ON_HOLD,
            CaseStatus.COMPLETED,
            CaseStatus.CANCELLED,
        }
    ),
    CaseStatus.ON_HOLD: frozenset({CaseStatus.IN_REVIEW, CaseStatus.CANCELLED}),
    CaseStatus.COMPLETED: frozenset(),
    CaseStatus.CANCELLED: frozenset(),
}

# Statuses from which a matched provider may be (re)assigned
ASSIGNABLE_STATUSES = frozenset({CaseStatus.NEW, CaseStatus.IN_REVIEW})


# =============================================================================
# Errors
# =============================================================================

class CaseLifecycleError(Exception):
    """Base exception for case lifecycle violations."""


class CaseNotFoundError(CaseLifecycleError):
    def __init__(self, case_id: UUID):
        self.case_id = case_id
        super().__init__(f"Case {case_id} not found")


class InvalidTransitionError(CaseLifecycleError):
    def __init__(self, case_id: UUID, from_status: str, to_status: str):
        self.case_id = case_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot move case from '{from_status}' to '{to_status}'")


class CaseClosedError(CaseLifecycleError):
    """The case is Completed/Cancelled and accepts no further changes."""

    def __init__(self, case_id: UUID, status: str):
        self.case_id = case_id
        self.status = status
        super().__init__(f"Case is {status} and can no longer be changed")


# =============================================================================
# Cancellation hooks
# =============================================================================

CancellationHook = Callable[[MaintenanceRepository, Case], None]


def release_open_schedule(repository: MaintenanceRepository, case: Case) -> None:
    """Reject pending proposals and cancel the active appointment of a cancelled case."""
    now = datetime.now(timezone.utc)
    for proposal in repository.list_proposals(case.id, status=ProposalStatus.PENDING):
        proposal.status = ProposalStatus.REJECTED.value
        proposal.decided_at = now
        for slot in proposal.slots:
            slot.status = SlotStatus.RELEASED.value
    for appointment in repository.list_active_appointments(case.id):
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancelled_at = now


DEFAULT_CANCELLATION_HOOKS: tuple[CancellationHook, ...] = (release_open_schedule,)


# =============================================================================
# State machine
# =============================================================================

def can_transition(from_status: CaseStatus | str, to_status: CaseStatus | str) -> bool:
    return CaseStatus(to_status) in ALLOWED_TRANSITIONS[CaseStatus(from_status)]


def is_terminal(case: Case) -> bool:
    return CaseStatus(case.status) in TERMINAL_CASE_STATUSES


class CaseLifecycle:
    """Applies status transitions, assignment and their side effects."""

    def __init__(
        self,
        repository: MaintenanceRepository,
        *,
        cancellation_hooks: Sequence[CancellationHook] | None = None,
    ):
        self.repository = repository
        self.cancellation_hooks = tuple(
            DEFAULT_CANCELLATION_HOOKS if cancellation_hooks is None else cancellation_hooks
        )

    def ensure_open(self, case: Case) -> None:
        """Raise CaseClosedError when the case can no longer be mutated."""
        if is_terminal(case):
            raise CaseClosedError(case.id, case.status)

    def ensure_can_transition(self, case: Case, to_status: CaseStatus) -> None:
        self.ensure_open(case)
        current = CaseStatus(case.status)
        if current != to_status and not can_transition(current, to_status):
            raise InvalidTransitionError(case.id, current.value, to_status.value)

    def transition(
        self,
        case: Case,
        to_status: CaseStatus,
        *,
        actor_user_id: UUID | None = None,
        reason: str | None = None,
    ) -> bool:
        """
        Move the case to to_status.

        Returns False when the case is already in that status (no-op).

        Raises:
            CaseClosedError: case is Completed/Cancelled
            InvalidTransitionError: transition not in ALLOWED_TRANSITIONS
        """
        self.ensure_can_transition(case, to_status)
        current = CaseStatus(case.status)
        if current == to_status:
            return False

        case.status = to_status.value
        self.repository.add_case_event(
            case,
            CaseEventType.STATUS_CHANGED,
            from_status=current.value,
            to_status=to_status.value,
            actor_user_id=actor_user_id,
            reason=reason,
        )
        logger.info(
            "Case %s status %s -> %s", case.id, current.value, to_status.value
        )

        if to_status == CaseStatus.CANCELLED:
            for hook in self.cancellation_hooks:
                hook(self.repository, case)

        self.repository.flush()
        return True

    def assign(
        self,
        case: Case,
        provider_id: UUID,
        *,
        reason: str | None = None,
        details: dict | None = None,
    ) -> None:
        """
        Record a matched provider.

        The case stays (or returns to) New until the provider accepts by
        proposing slots.
        """
        self.ensure_open(case)
        current = CaseStatus(case.status)
        if current not in ASSIGNABLE_STATUSES:
            raise InvalidTransitionError(case.id, current.value, CaseStatus.NEW.value)

        case.assigned_provider_id = provider_id
        case.status = CaseStatus.NEW.value
        self.repository.add_case_event(
            case,
            CaseEventType.ASSIGNED,
            from_status=current.value,
            to_status=CaseStatus.NEW.value,
            reason=reason,
            details={"provider_id": str(provider_id), **(details or {})},
        )
        self.repository.flush()

    def mark_unmatched(self, case: Case, *, reason: str) -> None:
        """No eligible provider: park the case in review, unassigned."""
        self.repository.add_case_event(case, CaseEventType.UNMATCHED, reason=reason)
        self.transition(case, CaseStatus.IN_REVIEW, reason=reason)

