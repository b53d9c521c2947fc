"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, created fresh for each test
- Organization, users (owner, tenant, contractor) and providers
- Factories for cases, proposal windows and session principals
- HTTPX AsyncClients authenticated with a session cookie and CSRF header
"""
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

# Settings are read at import time; pin them before importing the app
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AI_PROVIDER"] = ""
os.environ["GOOGLE_CALENDAR_ACCESS_TOKEN"] = ""
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""
os.environ["ALLOW_ROLE_SIMULATION"] = "False"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from fixdesk.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from fixdesk.core.security import create_session_token
from fixdesk.db.base import Base
from fixdesk.db.enums import CaseStatus, Role
from fixdesk.db.models import Case, Membership, Organization, Provider, User
from fixdesk.main import app
from fixdesk.schemas.auth import UserSession
from fixdesk.schemas.proposal import SlotWindow
from fixdesk.services.engine import build_engine


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh in-memory database per test.

    StaticPool keeps a single connection so the request threadpool and the
    test see the same data; app code is free to commit.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    org = Organization(
        id=uuid.uuid4(),
        name="Test Properties",
        slug=f"test-org-{uuid.uuid4().hex[:8]}",
        timezone="UTC",
    )
    db.add(org)
    db.commit()
    return org


def make_user(db: Session, org: Organization, role: Role, name: str) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{name.lower().replace(' ', '.')}-{uuid.uuid4().hex[:6]}@test.com",
        display_name=name,
    )
    db.add(user)
    db.flush()
    db.add(
        Membership(
            id=uuid.uuid4(),
            user_id=user.id,
            organization_id=org.id,
            role=role.value,
        )
    )
    db.commit()
    return user


@pytest.fixture
def owner_user(db: Session, test_org: Organization) -> User:
    return make_user(db, test_org, Role.OWNER, "Olive Owner")


@pytest.fixture
def tenant_user(db: Session, test_org: Organization) -> User:
    return make_user(db, test_org, Role.TENANT, "Tom Tenant")


@pytest.fixture
def other_tenant_user(db: Session, test_org: Organization) -> User:
    return make_user(db, test_org, Role.TENANT, "Nina Neighbor")


@pytest.fixture
def contractor_user(db: Session, test_org: Organization) -> User:
    return make_user(db, test_org, Role.CONTRACTOR, "Pat Plumber")


@pytest.fixture
def plumber(db: Session, test_org: Organization, contractor_user: User) -> Provider:
    """Plumbing provider linked to the contractor login."""
    provider = Provider(
        id=uuid.uuid4(),
        organization_id=test_org.id,
        user_id=contractor_user.id,
        name="Pat's Plumbing",
        category="Plumbing",
        specializations=["leaks", "drains", "water heaters"],
        rating=4.5,
        response_time_hours=4,
        max_jobs_per_day=3,
        emergency_available=True,
        is_active_contractor=True,
    )
    db.add(provider)
    db.commit()
    return provider


@pytest.fixture
def electrician(db: Session, test_org: Organization) -> Provider:
    provider = Provider(
        id=uuid.uuid4(),
        organization_id=test_org.id,
        name="Sparky Electric",
        category="Electrical",
        specializations=["wiring", "outlets"],
        rating=None,
        response_time_hours=24,
        max_jobs_per_day=3,
        emergency_available=False,
        is_active_contractor=True,
    )
    db.add(provider)
    db.commit()
    return provider


# =============================================================================
# Domain Factories
# =============================================================================

@pytest.fixture
def make_case(db: Session, test_org: Organization, tenant_user: User):
    """Factory for cases reported by the tenant."""

    def _make(
        *,
        title: str = "Kitchen sink leaking",
        description: str = "Water drips from the pipe under the kitchen sink.",
        category: str | None = "Plumbing",
        urgency: str = "Medium",
        status: CaseStatus = CaseStatus.NEW,
        assigned_provider: Provider | None = None,
        reported_by: User | None = None,
    ) -> Case:
        case = Case(
            id=uuid.uuid4(),
            organization_id=test_org.id,
            reported_by_user_id=(reported_by or tenant_user).id,
            title=title,
            description=description,
            category=category,
            urgency=urgency,
            status=status.value,
            assigned_provider_id=assigned_provider.id if assigned_provider else None,
        )
        db.add(case)
        db.commit()
        return case

    return _make


def make_windows(
    start_hours: tuple[int, int, int] = (10, 13, 16),
    *,
    days_ahead: int = 3,
    length_hours: int = 2,
) -> list[SlotWindow]:
    """Three windows on a future day (UTC)."""
    day = (datetime.now(timezone.utc) + timedelta(days=days_ahead)).replace(
        minute=0, second=0, microsecond=0
    )
    return [
        SlotWindow(
            start_time=day.replace(hour=hour),
            end_time=day.replace(hour=hour) + timedelta(hours=length_hours),
        )
        for hour in start_hours
    ]


@pytest.fixture
def windows() -> list[SlotWindow]:
    return make_windows()


@pytest.fixture
def window_factory():
    return make_windows


def session_for(user: User, org: Organization, role: Role) -> UserSession:
    return UserSession(
        user_id=user.id,
        org_id=org.id,
        role=role,
        email=user.email,
        display_name=user.display_name,
    )


@pytest.fixture
def principal_for(test_org: Organization):
    def _principal(user: User, role: Role) -> UserSession:
        return session_for(user, test_org, role)

    return _principal


@pytest.fixture
def tenant_session(tenant_user: User, test_org: Organization) -> UserSession:
    return session_for(tenant_user, test_org, Role.TENANT)


@pytest.fixture
def owner_session(owner_user: User, test_org: Organization) -> UserSession:
    return session_for(owner_user, test_org, Role.OWNER)


@pytest.fixture
def contractor_session(contractor_user: User, test_org: Organization) -> UserSession:
    return session_for(contractor_user, test_org, Role.CONTRACTOR)


@pytest.fixture
def engine(db: Session):
    """Component graph with fallback classification and no external calendar."""
    return build_engine(db, ai_provider=None)


# =============================================================================
# Client Fixtures
# =============================================================================

@asynccontextmanager
async def _client(db: Session, cookies: dict | None = None, csrf: bool = True):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    headers = {CSRF_HEADER: CSRF_HEADER_VALUE} if csrf else {}
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies=cookies or {},
            headers=headers,
        ) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


def _cookies(user: User, org: Organization, role: Role) -> dict:
    token = create_session_token(
        user_id=user.id,
        org_id=org.id,
        role=role.value,
        token_version=user.token_version,
    )
    return {COOKIE_NAME: token}


@pytest.fixture
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client."""
    async with _client(db) as c:
        yield c


@pytest.fixture
async def tenant_client(db, tenant_user, test_org) -> AsyncGenerator[AsyncClient, None]:
    async with _client(db, _cookies(tenant_user, test_org, Role.TENANT)) as c:
        yield c


@pytest.fixture
async def owner_client(db, owner_user, test_org) -> AsyncGenerator[AsyncClient, None]:
    async with _client(db, _cookies(owner_user, test_org, Role.OWNER)) as c:
        yield c


@pytest.fixture
async def contractor_client(
    db, contractor_user, test_org
) -> AsyncGenerator[AsyncClient, None]:
    async with _client(db, _cookies(contractor_user, test_org, Role.CONTRACTOR)) as c:
        yield c


@pytest.fixture
async def no_csrf_tenant_client(db, tenant_user, test_org) -> AsyncGenerator[AsyncClient, None]:
    async with _client(db, _cookies(tenant_user, test_org, Role.TENANT), csrf=False) as c:
        yield c


@pytest.fixture
async def other_tenant_client(
    db, other_tenant_user, test_org
) -> AsyncGenerator[AsyncClient, None]:
    async with _client(db, _cookies(other_tenant_user, test_org, Role.TENANT)) as c:
        yield c
