"""Case schemas - Pydantic models for the maintenance case API."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from fixdesk.db.enums import CaseStatus


# =============================================================================
# Cases
# =============================================================================

class CaseCreate(BaseModel):
    """Inbound maintenance report."""
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=10000)
    property_id: UUID | None = None
    unit_id: UUID | None = None
    category: str | None = Field(None, max_length=100)
    priority: str | None = None  # Free-form; normalized (critical -> Urgent)
    photos: list[str] = Field(default_factory=list, max_length=5)


class CaseCreated(BaseModel):
    """Returned immediately; triage continues in the background."""
    id: UUID
    status: str
    triage_status: str


class CaseEventRead(BaseModel):
    model_config = {"from_attributes": True}

    event_type: str
    from_status: str | None
    to_status: str | None
    reason: str | None
    actor_user_id: UUID | None
    created_at: datetime


class CaseRead(BaseModel):
    """Case detail."""
    model_config = {"from_attributes": True}

    id: UUID
    organization_id: UUID
    title: str
    description: str
    category: str | None
    urgency: str
    status: str
    assigned_provider_id: UUID | None
    property_id: UUID | None
    unit_id: UUID | None
    reported_by_user_id: UUID | None
    classification: dict | None
    estimated_duration: str | None
    ai_suggested_time: datetime | None
    ai_suggested_duration_minutes: int | None
    triage_status: str
    triage_error: str | None
    created_at: datetime
    updated_at: datetime
    events: list[CaseEventRead] = Field(default_factory=list)


class TriageRequested(BaseModel):
    case_id: UUID
    job_id: UUID
    triage_status: str


class CaseStatusUpdate(BaseModel):
    """Manual lifecycle change (hold, resume, complete, cancel)."""
    status: CaseStatus
    reason: str | None = Field(None, max_length=500)


# =============================================================================
# AI guidance
# =============================================================================

class CostEstimate(BaseModel):
    estimated_cost_low: Decimal
    estimated_cost_high: Decimal
    estimated_cost_average: Decimal
    reasoning: str
    is_fallback: bool = False


class DurationEstimate(BaseModel):
    estimated_minutes: int
    reasoning: str


class GuidanceRead(BaseModel):
    """Read-only cost/duration guidance for a case."""
    case_id: UUID
    cost: CostEstimate
    duration: DurationEstimate
    suggested_time: datetime | None
