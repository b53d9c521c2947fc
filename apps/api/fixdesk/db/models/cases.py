"""SQLAlchemy ORM models for maintenance cases."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fixdesk.db.base import Base
from fixdesk.db.enums import DEFAULT_CASE_STATUS, DEFAULT_CASE_URGENCY, TriageStatus
from fixdesk.db.types import JsonType, utcnow

if TYPE_CHECKING:
    from fixdesk.db.models import Appointment, Proposal, Provider


class Case(Base):
    """
    A reported maintenance issue.

    Property and unit references point into the record-management subsystem
    and are stored as opaque ids.
    """

    __tablename__ = "cases"
    __table_args__ = (
        Index("idx_cases_org_status", "organization_id", "status"),
        Index("idx_cases_assigned_provider", "assigned_provider_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    reported_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    property_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    unit_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Reporter-supplied photos (URLs or base64 data URIs) forwarded to the classifier
    photos: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    urgency: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_CASE_URGENCY.value,
        server_default=text(f"'{DEFAULT_CASE_URGENCY.value}'"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_CASE_STATUS.value,
        server_default=text(f"'{DEFAULT_CASE_STATUS.value}'"),
        nullable=False,
    )
    assigned_provider_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("providers.id", ondelete="SET NULL"), nullable=True
    )

    # Latest triage result (replaced wholesale by a fresh run, never edited)
    classification: Mapped[dict | None] = mapped_column(JsonType, nullable=True)
    classified_at: Mapped[datetime | None] = mapped_column(nullable=True)
    estimated_duration: Mapped[str | None] = mapped_column(String(50), nullable=True)
    ai_suggested_time: Mapped[datetime | None] = mapped_column(nullable=True)
    ai_suggested_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ai_time_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Background pipeline observability
    triage_status: Mapped[str] = mapped_column(
        String(20),
        default=TriageStatus.PENDING.value,
        server_default=text(f"'{TriageStatus.PENDING.value}'"),
        nullable=False,
    )
    triage_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Bumped on every write; selections on any proposal of the case race on it
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    assigned_provider: Mapped["Provider | None"] = relationship()
    events: Mapped[list["CaseEvent"]] = relationship(
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="CaseEvent.created_at",
    )
    proposals: Mapped[list["Proposal"]] = relationship(
        back_populates="case", cascade="all, delete-orphan"
    )
    appointments: Mapped[list["Appointment"]] = relationship(
        back_populates="case", cascade="all, delete-orphan"
    )


class CaseEvent(Base):
    """Append-only history of what happened to a case."""

    __tablename__ = "case_events"
    __table_args__ = (Index("idx_case_events_case", "case_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JsonType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    case: Mapped["Case"] = relationship(back_populates="events")
