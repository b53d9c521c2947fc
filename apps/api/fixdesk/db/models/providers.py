"""SQLAlchemy ORM model for service providers (contractors)."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, Numeric, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from fixdesk.db.base import Base
from fixdesk.db.types import JsonType, utcnow


class Provider(Base):
    """
    A contractor that can be matched to cases.

    Owned by the record-management subsystem; the triage engine only reads it.
    Current workload is derived from open cases at scoring time, never stored.
    """

    __tablename__ = "providers"
    __table_args__ = (
        Index("idx_providers_org_active", "organization_id", "is_active_contractor"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    # Login of the contractor, when they use the portal
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    specializations: Mapped[list] = mapped_column(JsonType, default=list, nullable=False)
    availability_pattern: Mapped[str] = mapped_column(
        String(50),
        default="weekdays_9to5",
        server_default=text("'weekdays_9to5'"),
        nullable=False,
    )
    response_time_hours: Mapped[int | None] = mapped_column(Integer, default=24, nullable=True)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_jobs_per_day: Mapped[int] = mapped_column(
        Integer, default=3, server_default=text("3"), nullable=False
    )
    emergency_available: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("FALSE"), nullable=False
    )
    is_active_contractor: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=text("TRUE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
