"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta
from uuid import uuid4

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["DEBUG"] = "false"
os.environ["REDIS_URL"] = ""
os.environ["BASE_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from carecal.auth.utils import get_password_hash
from carecal.db.models import (
    Appointment,
    AppointmentAssignee,
    AppointmentStatus,
    Base,
    DashboardAccess,
    GrantPermission,
    GrantStatus,
    User,
)
from carecal.ratelimit import InMemoryRateLimitStore

# Use in-memory SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def rate_limit_store() -> InMemoryRateLimitStore:
    """Fresh rate-limit counters for each test."""
    return InMemoryRateLimitStore()


@pytest.fixture(scope="function")
def client(
    db: Session, rate_limit_store: InMemoryRateLimitStore
) -> Generator[TestClient, None, None]:
    """Create a test client with database and rate-limit store overrides."""
    # Import here to ensure env vars are set
    from carecal.dependencies import get_db
    from carecal.main import app
    from carecal.ratelimit import get_rate_limit_store

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limit_store] = lambda: rate_limit_store
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _insert_user(db: Session, email: str, display_name: str | None = None) -> User:
    user = User(
        id=str(uuid4()),
        email=email,
        password_hash=get_password_hash("password123"),
        display_name=display_name,
        is_email_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _insert_grant(
    db: Session,
    model: type[AppointmentAssignee] | type[DashboardAccess],
    resource_id: str,
    invited_by: User,
    *,
    invited_user_id: str | None = None,
    invited_email: str | None = None,
    status: GrantStatus = GrantStatus.PENDING,
    permission: GrantPermission = GrantPermission.READ,
):
    grant = model(
        invited_user_id=invited_user_id,
        invited_email=invited_email,
        invited_by_id=invited_by.id,
        status=status,
        permission=permission,
        token=uuid4().hex + uuid4().hex,
    )
    setattr(grant, model.resource_field, resource_id)
    db.add(grant)
    db.commit()
    db.refresh(grant)
    return grant


@pytest.fixture
def owner(db: Session) -> User:
    """Appointment owner."""
    return _insert_user(db, "alice@example.com", "Alice Owner")


@pytest.fixture
def bob(db: Session) -> User:
    """Second user, usually the invitee."""
    return _insert_user(db, "bob@example.com", "Bob Invitee")


@pytest.fixture
def carol(db: Session) -> User:
    """Third user, usually an outsider."""
    return _insert_user(db, "carol@example.com", "Carol Outsider")


@pytest.fixture
def appointment(db: Session, owner: User) -> Appointment:
    """Appointment owned by ``owner``."""
    start = datetime(2026, 3, 2, 9, 30)
    appt = Appointment(
        id=str(uuid4()),
        owner_id=owner.id,
        title="Cardiology check-up",
        start=start,
        end=start + timedelta(hours=1),
        location="St Mary's, room 4",
        status=AppointmentStatus.PENDING,
    )
    db.add(appt)
    db.commit()
    db.refresh(appt)
    return appt


@pytest.fixture
def login_as(client: TestClient) -> Generator[Callable[[User], TestClient], None, None]:
    """Switch the authenticated user of ``client``."""
    from carecal.dependencies import get_current_user
    from carecal.main import app

    def _login(user: User) -> TestClient:
        app.dependency_overrides[get_current_user] = lambda: user
        return client

    yield _login
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
def authenticated_client(login_as, owner: User) -> TestClient:
    """Test client authenticated as the appointment owner."""
    return login_as(owner)


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Factory inserting verified users."""
    return lambda email, display_name=None: _insert_user(db, email, display_name)


@pytest.fixture
def make_grant(db: Session) -> Callable[..., AppointmentAssignee | DashboardAccess]:
    """Factory inserting grant rows directly, bypassing the invitation flow."""

    def _make(model, resource_id, invited_by, **kwargs):
        return _insert_grant(db, model, resource_id, invited_by, **kwargs)

    return _make
