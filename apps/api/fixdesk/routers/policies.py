"""Approval policy endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from fixdesk.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from fixdesk.db.enums import ROLES_CAN_MANAGE_POLICY
from fixdesk.schemas.auth import UserSession
from fixdesk.schemas.policy import ApprovalPolicyRead, ApprovalPolicyUpsert
from fixdesk.services import policy_service

router = APIRouter()


@router.get("/active", response_model=ApprovalPolicyRead | None)
def get_active_policy(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """The organization's active policy, or null (every selection then waits for approval)."""
    return policy_service.get_active_policy(db, session.org_id)


@router.put(
    "/active",
    response_model=ApprovalPolicyRead,
    dependencies=[Depends(require_csrf_header)],
)
def set_active_policy(
    data: ApprovalPolicyUpsert,
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_POLICY)),
    db: Session = Depends(get_db),
):
    """Replace the active policy; older policies are kept inactive."""
    try:
        return policy_service.set_active_policy(db, session.org_id, data, session.user_id)
    except policy_service.UnknownTrustedProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except policy_service.PolicyConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
