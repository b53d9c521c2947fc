"""Approval policy schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from fixdesk.db.enums import CaseUrgency, InvolvementMode


class ApprovalPolicyUpsert(BaseModel):
    """Replace the organization's active policy."""
    name: str = Field("Default policy", min_length=1, max_length=255)
    involvement_mode: InvolvementMode = InvolvementMode.BALANCED
    cost_threshold: Decimal | None = Field(None, ge=0)
    preferred_start_hour: int | None = Field(None, ge=0, le=23)
    preferred_end_hour: int | None = Field(None, ge=0, le=23)
    trusted_provider_ids: list[UUID] = Field(default_factory=list)
    urgency_gate: CaseUrgency | None = None
    timezone: str | None = Field(None, max_length=50)

    @model_validator(mode="after")
    def _window_is_complete(self):
        if (self.preferred_start_hour is None) != (self.preferred_end_hour is None):
            raise ValueError("preferred_start_hour and preferred_end_hour must be set together")
        return self


class ApprovalPolicyRead(BaseModel):
    model_config = {"from_attributes": True}

    id: UUID
    name: str
    involvement_mode: str
    cost_threshold: Decimal | None
    preferred_start_hour: int | None
    preferred_end_hour: int | None
    trusted_provider_ids: list[UUID]
    urgency_gate: str | None
    timezone: str
    is_active: bool
    created_at: datetime
