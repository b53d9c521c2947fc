"""SQLAlchemy ORM model for confirmed appointments."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fixdesk.db.base import Base
from fixdesk.db.enums import DEFAULT_APPOINTMENT_STATUS
from fixdesk.db.types import utcnow

if TYPE_CHECKING:
    from fixdesk.db.models import Case, Provider


class Appointment(Base):
    """
    A confirmed visit, materialized from an approved proposal slot.

    A case may accumulate historical appointments through rescheduling but
    holds at most one active (Confirmed/Scheduled) appointment.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_case", "case_id", "status"),
        Index("idx_appointments_provider_start", "provider_id", "scheduled_start"),
        CheckConstraint("scheduled_end > scheduled_start", name="ck_appointment_window"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("providers.id", ondelete="CASCADE"), nullable=False
    )
    proposal_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("proposals.id", ondelete="SET NULL"), nullable=True
    )
    slot_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    scheduled_start: Mapped[datetime] = mapped_column(nullable=False)
    scheduled_end: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_APPOINTMENT_STATUS.value,
        server_default=text(f"'{DEFAULT_APPOINTMENT_STATUS.value}'"),
        nullable=False,
    )

    # External calendar (best-effort)
    external_event_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    calendar_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    case: Mapped["Case"] = relationship(back_populates="appointments")
    provider: Mapped["Provider"] = relationship()
