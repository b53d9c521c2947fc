"""SQLAlchemy ORM models."""

from fixdesk.db.models.appointments import Appointment
from fixdesk.db.models.auth import Membership, Organization, User
from fixdesk.db.models.cases import Case, CaseEvent
from fixdesk.db.models.jobs import Job
from fixdesk.db.models.policies import ApprovalPolicy
from fixdesk.db.models.proposals import Proposal, ProposalSlot
from fixdesk.db.models.providers import Provider

__all__ = [
    "Appointment",
    "ApprovalPolicy",
    "Case",
    "CaseEvent",
    "Job",
    "Membership",
    "Organization",
    "Proposal",
    "ProposalSlot",
    "Provider",
    "User",
]
