"""Enum definitions for application constants."""

from fixdesk.db.enums.appointments import (
    ACTIVE_APPOINTMENT_STATUSES,
    AppointmentStatus,
    DEFAULT_APPOINTMENT_STATUS,
)
from fixdesk.db.enums.auth import (
    ROLES_CAN_APPROVE,
    ROLES_CAN_MANAGE_CASES,
    ROLES_CAN_MANAGE_POLICY,
    Role,
)
from fixdesk.db.enums.cases import (
    CaseEventType,
    CaseStatus,
    CaseUrgency,
    OPEN_CASE_STATUSES,
    TERMINAL_CASE_STATUSES,
    TriageStatus,
)
from fixdesk.db.enums.classification import (
    ClassificationUrgency,
    Complexity,
    SafetyRisk,
    TimeWindow,
)
from fixdesk.db.enums.jobs import JobStatus, JobType
from fixdesk.db.enums.notifications import EVENT_LABELS, NotificationEvent
from fixdesk.db.enums.policies import DEFAULT_INVOLVEMENT_MODE, InvolvementMode
from fixdesk.db.enums.proposals import REQUIRED_SLOT_COUNT, ProposalStatus, SlotStatus

# Defaults
DEFAULT_CASE_STATUS = CaseStatus.NEW
DEFAULT_CASE_URGENCY = CaseUrgency.MEDIUM
DEFAULT_JOB_STATUS = JobStatus.PENDING
DEFAULT_PROPOSAL_STATUS = ProposalStatus.PENDING

__all__ = [
    "ACTIVE_APPOINTMENT_STATUSES",
    "AppointmentStatus",
    "CaseEventType",
    "CaseStatus",
    "CaseUrgency",
    "ClassificationUrgency",
    "Complexity",
    "DEFAULT_APPOINTMENT_STATUS",
    "DEFAULT_CASE_STATUS",
    "DEFAULT_CASE_URGENCY",
    "DEFAULT_INVOLVEMENT_MODE",
    "DEFAULT_JOB_STATUS",
    "DEFAULT_PROPOSAL_STATUS",
    "EVENT_LABELS",
    "InvolvementMode",
    "JobStatus",
    "JobType",
    "NotificationEvent",
    "OPEN_CASE_STATUSES",
    "ProposalStatus",
    "REQUIRED_SLOT_COUNT",
    "ROLES_CAN_APPROVE",
    "ROLES_CAN_MANAGE_CASES",
    "ROLES_CAN_MANAGE_POLICY",
    "Role",
    "SafetyRisk",
    "SlotStatus",
    "TERMINAL_CASE_STATUSES",
    "TimeWindow",
    "TriageStatus",
]
