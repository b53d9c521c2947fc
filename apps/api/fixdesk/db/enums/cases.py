"""Maintenance case enums."""

from enum import Enum


class CaseStatus(str, Enum):
    """
    Maintenance case lifecycle.

    Flow: New → In Review → Scheduled → Completed
                   ↕            ↘ In Review (reschedule)
                On Hold     (any non-terminal) → Cancelled

    An assigned-but-not-accepted case stays New with assigned_provider_id set.
    """

    NEW = "New"
    IN_REVIEW = "In Review"
    SCHEDULED = "Scheduled"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class CaseUrgency(str, Enum):
    """Case priority as stored on the case."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class TriageStatus(str, Enum):
    """State of the background classify → match → assign pipeline."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class CaseEventType(str, Enum):
    """Entries in a case's history."""

    CREATED = "created"
    TRIAGED = "triaged"
    ASSIGNED = "assigned"
    UNMATCHED = "unmatched"
    STATUS_CHANGED = "status_changed"
    PROPOSAL_SUBMITTED = "proposal_submitted"
    SLOT_SELECTED = "slot_selected"
    APPOINTMENT_APPROVED = "appointment_approved"
    APPOINTMENT_DECLINED = "appointment_declined"


TERMINAL_CASE_STATUSES = {CaseStatus.COMPLETED, CaseStatus.CANCELLED}
OPEN_CASE_STATUSES = {
    CaseStatus.NEW,
    CaseStatus.IN_REVIEW,
    CaseStatus.SCHEDULED,
    CaseStatus.ON_HOLD,
}
