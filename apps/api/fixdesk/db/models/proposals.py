"""SQLAlchemy ORM models for scheduling proposals."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fixdesk.db.base import Base
from fixdesk.db.enums import DEFAULT_PROPOSAL_STATUS, SlotStatus
from fixdesk.db.types import utcnow

if TYPE_CHECKING:
    from fixdesk.db.models import Case, Provider


class Proposal(Base):
    """
    One provider's scheduling offer for one case.

    At most one pending proposal exists per (case, provider). The version
    column guards slot selection and approval against concurrent writers.
    """

    __tablename__ = "proposals"
    __table_args__ = (
        Index("idx_proposals_case", "case_id", "status"),
        Index(
            "uq_proposals_pending_case_provider",
            "case_id",
            "provider_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
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

    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    estimated_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_PROPOSAL_STATUS.value,
        server_default=text(f"'{DEFAULT_PROPOSAL_STATUS.value}'"),
        nullable=False,
    )

    # Selection + approval outcome (slot ids are local to this proposal, no FK)
    selected_slot_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    auto_approved: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("FALSE"), nullable=False
    )
    auto_approval_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    case: Mapped["Case"] = relationship(back_populates="proposals")
    provider: Mapped["Provider"] = relationship()
    slots: Mapped[list["ProposalSlot"]] = relationship(
        back_populates="proposal",
        cascade="all, delete-orphan",
        order_by="ProposalSlot.slot_number",
    )


class ProposalSlot(Base):
    """A candidate appointment window (1-3) belonging to a proposal."""

    __tablename__ = "proposal_slots"
    __table_args__ = (
        UniqueConstraint("proposal_id", "slot_number", name="uq_proposal_slot_number"),
        CheckConstraint("slot_number BETWEEN 1 AND 3", name="ck_proposal_slot_number"),
        CheckConstraint("end_time > start_time", name="ck_proposal_slot_window"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
    slot_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=SlotStatus.PROPOSED.value,
        server_default=text(f"'{SlotStatus.PROPOSED.value}'"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    proposal: Mapped["Proposal"] = relationship(back_populates="slots")
