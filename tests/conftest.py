"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cato.core.approval.machine import ApprovalWorkflowEngine
from cato.core.approval.service import POAMService
from cato.core.rbac.authority import AuthorityModel
from cato.db.base import Base
from cato.db.store import InMemoryPOAMStore
from cato.services.audit import InMemoryAuditTrail
import cato.db.models  # noqa: F401


class FakeClock:
    """Deterministic clock; call ``advance`` to move time forward."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    """Clock starting at a fixed UTC instant."""
    return FakeClock(datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def authority():
    """Authority model over the default DoD role table."""
    return AuthorityModel()


@pytest.fixture
def engine(authority, clock):
    """Workflow engine with a deterministic clock."""
    return ApprovalWorkflowEngine(authority, clock=clock)


@pytest.fixture
def draft_record(engine):
    """A fresh Draft POA&M."""
    return engine.create_record(
        "tenant-a",
        "Unpatched OpenSSL on bastion hosts",
        risk_level="High",
        severity="High",
        affected_controls=("SI-2", "RA-5"),
    )


@pytest.fixture
def store():
    return InMemoryPOAMStore()


@pytest.fixture
def audit():
    return InMemoryAuditTrail()


@pytest.fixture
def service(store, authority, audit, clock):
    """POA&M service over in-memory storage."""
    return POAMService(store, authority, audit=audit, clock=clock)


@pytest.fixture
def db_engine():
    """In-memory SQLite database with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """Database session bound to the in-memory database."""
    session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session, authority):
    """Test client with the database and role table overridden."""
    from cato.api.deps import get_authority_model, get_db
    from cato.api.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_authority_model] = lambda: authority
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_roles_config():
    """Role table overrides as they would appear in YAML."""
    return {
        "roles": {
            "ISSO": {
                "approval_level": 2,
                "description": "Site ISSO",
            },
            "Engineer": {
                "permissions": {
                    "poam_items": ["read", "write"],
                },
            },
        },
    }
