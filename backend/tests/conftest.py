"""Pytest configuration and fixtures."""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JOB_QUEUE_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ordaro.core.cache import redis_cache
from ordaro.core.security import create_access_token
from ordaro.db.base import Base
from ordaro.db.session import get_db
from ordaro.main import app
# Import all models to ensure they're registered with Base.metadata
from ordaro.models import *
from ordaro.services.cost_workers import register_cost_workers
from ordaro.services.inventory_service import InventoryService
from ordaro.services.job_queue import JobQueue

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"
TENANT_ID = "org_test"
OTHER_TENANT_ID = "org_other"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_tenant_cache():
    """Cached reads are keyed by tenant, and tenants repeat across tests."""
    for tenant in (TENANT_ID, OTHER_TENANT_ID):
        redis_cache.invalidate_organization(tenant)
    yield
    for tenant in (TENANT_ID, OTHER_TENANT_ID):
        redis_cache.invalidate_organization(tenant)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiters during tests to avoid flaky failures
    from ordaro.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def organization(db_session: Session) -> Organization:
    """Tenant with a 65% target margin."""
    org = Organization(external_id=TENANT_ID, name="Test Bistro", is_active=True)
    org.settings = OrganizationSettings(target_margin_threshold=Decimal("0.65"), currency="USD")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def other_organization(db_session: Session) -> Organization:
    org = Organization(external_id=OTHER_TENANT_ID, name="Other Diner", is_active=True)
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def make_ingredient(db_session: Session, organization: Organization):
    """Factory for ingredients with an empty ledger."""
    def _make(name: str = "Flour", unit: str = "kg", reorder_threshold=None, org: Organization = None) -> Ingredient:
        ingredient = Ingredient(
            organization_id=(org or organization).id,
            name=name,
            unit=unit,
            total_stock=Decimal("0"),
            reorder_threshold=reorder_threshold,
        )
        db_session.add(ingredient)
        db_session.commit()
        db_session.refresh(ingredient)
        return ingredient

    return _make


@pytest.fixture
def jobs(session_factory) -> JobQueue:
    """Enabled queue with the cost propagation handlers; drained by hand."""
    queue = JobQueue(session_factory=session_factory, enabled=True, retry_backoff_seconds=0)
    register_cost_workers(queue)
    return queue


@pytest.fixture
def inventory(db_session: Session, organization: Organization, jobs: JobQueue) -> InventoryService:
    return InventoryService(db_session, TENANT_ID, jobs=jobs)


def make_token(role: str = "owner", tenant_id: str = TENANT_ID) -> str:
    return create_access_token(data={"sub": "user_1", "role": role, "org_id": tenant_id})


@pytest.fixture
def auth_headers(organization: Organization) -> dict:
    """Get authentication headers for an owner of the test organization."""
    return {"Authorization": f"Bearer {make_token('owner')}"}


@pytest.fixture
def staff_headers(organization: Organization) -> dict:
    return {"Authorization": f"Bearer {make_token('staff')}"}


@pytest.fixture
def token_headers():
    """Build headers for an arbitrary role and tenant."""
    def _headers(role: str = "owner", tenant_id: str = TENANT_ID) -> dict:
        return {"Authorization": f"Bearer {make_token(role, tenant_id)}"}

    return _headers
