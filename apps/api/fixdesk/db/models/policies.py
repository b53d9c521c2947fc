"""SQLAlchemy ORM model for approval policies."""

from __future__ import annotations

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
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from fixdesk.db.base import Base
from fixdesk.db.enums import DEFAULT_INVOLVEMENT_MODE
from fixdesk.db.types import JsonType, utcnow


class ApprovalPolicy(Base):
    """
    Organization-scoped autonomy rules for confirming selected slots.

    Null gates are "not configured" and always pass. Exactly one policy per
    organization may be active (partial unique index + service-level swap).
    """

    __tablename__ = "approval_policies"
    __table_args__ = (
        Index(
            "uq_approval_policies_active_org",
            "organization_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        CheckConstraint(
            "preferred_start_hour IS NULL OR (preferred_start_hour BETWEEN 0 AND 23)",
            name="ck_policy_start_hour",
        ),
        CheckConstraint(
            "preferred_end_hour IS NULL OR (preferred_end_hour BETWEEN 0 AND 23)",
            name="ck_policy_end_hour",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    involvement_mode: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_INVOLVEMENT_MODE.value,
        server_default=text(f"'{DEFAULT_INVOLVEMENT_MODE.value}'"),
        nullable=False,
    )
    cost_threshold: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    preferred_start_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)
    preferred_end_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trusted_provider_ids: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    urgency_gate: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # Zone used to read a slot's local hour
    timezone: Mapped[str] = mapped_column(
        String(50),
        default="America/Los_Angeles",
        server_default=text("'America/Los_Angeles'"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("TRUE"), nullable=False
    )
    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
