"""Pydantic schemas for API request/response models."""

from fixdesk.schemas.auth import UserSession
from fixdesk.schemas.case import (
    CaseCreate,
    CaseCreated,
    CaseEventRead,
    CaseRead,
    CaseStatusUpdate,
    CostEstimate,
    DurationEstimate,
    GuidanceRead,
    TriageRequested,
)
from fixdesk.schemas.classification import ClassificationResult
from fixdesk.schemas.policy import ApprovalPolicyRead, ApprovalPolicyUpsert
from fixdesk.schemas.proposal import (
    AppointmentRead,
    ProposalCreate,
    ProposalDecision,
    ProposalRead,
    SlotRead,
    SlotSelectionResult,
    SlotWindow,
)

__all__ = [
    "UserSession",
    "CaseCreate",
    "CaseCreated",
    "CaseEventRead",
    "CaseRead",
    "CaseStatusUpdate",
    "CostEstimate",
    "DurationEstimate",
    "GuidanceRead",
    "TriageRequested",
    "ClassificationResult",
    "ApprovalPolicyRead",
    "ApprovalPolicyUpsert",
    "AppointmentRead",
    "ProposalCreate",
    "ProposalDecision",
    "ProposalRead",
    "SlotRead",
    "SlotSelectionResult",
    "SlotWindow",
]
