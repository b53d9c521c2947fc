"""FastAPI dependencies: database session, caller identity, CSRF and the engine."""

from typing import Generator
from uuid import UUID

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from fixdesk.core.security import decode_session_token
from fixdesk.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "fixdesk_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """One session per request, closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _load_user(request: Request, db: Session):
    """
    Resolve the session cookie to an active user.

    Raises:
        HTTPException 401: missing/invalid/expired token, unknown or disabled
            user, or a token issued before the user's last revocation
    """
    from fixdesk.db.models import User

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        claims = decode_session_token(token)
        user_id = UUID(str(claims["sub"]))
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Account unavailable")
    if user.token_version != claims.get("token_version"):
        raise HTTPException(status_code=401, detail="Session revoked")
    return user


def get_current_session(request: Request, db: Session = Depends(get_db)):
    """
    Caller context (user, organization, role) for org-scoped endpoints.

    Raises:
        HTTPException 401: not authenticated
        HTTPException 403: no membership, or a role this service does not know
    """
    from fixdesk.db.enums import Role
    from fixdesk.db.models import Membership
    from fixdesk.schemas.auth import UserSession

    user = _load_user(request, db)
    membership = db.query(Membership).filter(Membership.user_id == user.id).first()
    if not membership:
        raise HTTPException(status_code=403, detail="No organization membership")
    if not Role.has_value(membership.role):
        raise HTTPException(status_code=403, detail=f"Unknown role '{membership.role}'")

    return UserSession(
        user_id=user.id,
        org_id=membership.organization_id,
        role=Role(membership.role),
        email=user.email,
        display_name=user.display_name,
    )


def require_roles(allowed_roles):
    """
    Dependency factory that admits only the given roles.

    Usage:
        session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_POLICY))
    """

    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action",
            )
        return session

    return dependency


def require_csrf_header(request: Request) -> None:
    """Mutations must carry the X-Requested-With header (403 otherwise)."""
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def get_engine(db: Session = Depends(get_db)):
    """Per-request component graph (repository, lifecycle, workflows)."""
    from fixdesk.services.engine import build_engine

    return build_engine(db)
