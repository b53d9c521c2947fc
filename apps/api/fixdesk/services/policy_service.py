"""Approval policy service - one active policy per organization."""

import logging
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fixdesk.db.models import ApprovalPolicy, Organization, Provider
from fixdesk.db.repository import MaintenanceRepository
from fixdesk.schemas.policy import ApprovalPolicyUpsert

logger = logging.getLogger(__name__)


class PolicyServiceError(Exception):
    """Base exception for policy service errors."""


class PolicyConflictError(PolicyServiceError):
    """Another writer activated a policy at the same time."""


class UnknownTrustedProviderError(PolicyServiceError):
    def __init__(self, provider_ids: list[UUID]):
        self.provider_ids = provider_ids
        super().__init__(
            "Unknown trusted provider(s): " + ", ".join(str(p) for p in provider_ids)
        )


def get_active_policy(db: Session, org_id: UUID) -> ApprovalPolicy | None:
    return MaintenanceRepository(db).get_active_policy(org_id)


def set_active_policy(
    db: Session,
    org_id: UUID,
    data: ApprovalPolicyUpsert,
    user_id: UUID | None = None,
) -> ApprovalPolicy:
    """
    Create a new policy and make it the only active one.

    Previous policies are kept (inactive) for history. Deactivation and
    insert happen in one transaction; the partial unique index rejects a
    concurrent activation, surfaced as PolicyConflictError.
    """
    trusted = list(dict.fromkeys(data.trusted_provider_ids))
    if trusted:
        known = {
            row[0]
            for row in db.query(Provider.id)
            .filter(Provider.organization_id == org_id, Provider.id.in_(trusted))
            .all()
        }
        missing = [p for p in trusted if p not in known]
        if missing:
            raise UnknownTrustedProviderError(missing)

    timezone = data.timezone
    if not timezone:
        org = db.query(Organization).filter(Organization.id == org_id).first()
        timezone = org.timezone if org else "UTC"

    try:
        db.query(ApprovalPolicy).filter(
            ApprovalPolicy.organization_id == org_id,
            ApprovalPolicy.is_active.is_(True),
        ).update({ApprovalPolicy.is_active: False}, synchronize_session="fetch")
        db.flush()

        policy = ApprovalPolicy(
            organization_id=org_id,
            name=data.name,
            involvement_mode=data.involvement_mode.value,
            cost_threshold=data.cost_threshold,
            preferred_start_hour=data.preferred_start_hour,
            preferred_end_hour=data.preferred_end_hour,
            trusted_provider_ids=[str(p) for p in trusted],
            urgency_gate=data.urgency_gate.value if data.urgency_gate else None,
            timezone=timezone,
            is_active=True,
            created_by_user_id=user_id,
        )
        db.add(policy)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise PolicyConflictError("Another policy was activated concurrently; retry") from exc

    db.refresh(policy)
    logger.info(
        "Approval policy %s activated for org %s (mode=%s)",
        policy.id,
        org_id,
        policy.involvement_mode,
    )
    return policy
