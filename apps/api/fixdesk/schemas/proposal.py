"""Proposal schemas - Pydantic models for slot proposals and selection."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class SlotWindow(BaseModel):
    """One offered appointment window."""
    start_time: datetime
    end_time: datetime


class ProposalCreate(BaseModel):
    """
    Provider's scheduling offer.

    Slot count and overlap are validated by the proposal workflow so the
    caller gets a specific reason instead of a generic 422.
    """
    provider_id: UUID | None = None  # Defaults to the caller's provider record
    slots: list[SlotWindow]
    estimated_cost: Decimal | None = Field(None, ge=0)
    estimated_duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    notes: str | None = Field(None, max_length=2000)


class SlotRead(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    slot_number: int
    start_time: datetime
    end_time: datetime
    status: str


class ProposalRead(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    case_id: UUID
    provider_id: UUID
    estimated_cost: Decimal | None
    estimated_duration_minutes: int
    notes: str | None
    status: str
    selected_slot_id: UUID | None
    auto_approved: bool
    auto_approval_reason: str | None
    expires_at: datetime | None
    created_at: datetime
    slots: list[SlotRead]


class SlotSelectionResult(BaseModel):
    """Outcome of selecting a slot."""
    proposal_id: UUID
    auto_approved: bool
    appointment_id: UUID | None = None
    reason: str
    message: str


class ProposalDecision(BaseModel):
    """Manual approve/decline of a deferred selection."""
    reason: str | None = Field(None, max_length=500)


class AppointmentRead(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    case_id: UUID
    provider_id: UUID
    scheduled_start: datetime
    scheduled_end: datetime
    status: str
    external_event_id: str | None
