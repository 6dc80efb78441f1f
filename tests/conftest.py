"""Pytest fixtures and configuration for opsflow tests."""

import os

# Keep the application engine off the filesystem during tests.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
import uuid
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from opsflow.database.database import Base
from opsflow.database.employee_repository import EmployeeRepository
from opsflow.engine.assignment import clear_identity_cache
from opsflow.models.employee import Employee
from opsflow.models.event import BusinessEvent, EventMetadata, EventSource, EventTrigger
from opsflow.notifications.dispatcher import InMemoryNotificationDispatcher


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

SUBSIDIARY = "finishes"


@pytest.fixture(scope="function")
def db_session():
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test.
    """
    from opsflow.database import models  # noqa: F401

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_identity_cache():
    """The identity cache is process-wide; start every test empty."""
    clear_identity_cache()
    yield
    clear_identity_cache()


@pytest.fixture
def employee_repository(db_session: Session):
    return EmployeeRepository(db_session)


@pytest.fixture
def make_employee(employee_repository):
    """Factory that stores an employee and returns it."""
    def _make(employee_id: str, **overrides) -> Employee:
        data = {
            "id": employee_id,
            "email": f"{employee_id}@example.com",
            "first_name": employee_id.replace("emp-", "").title(),
            "last_name": "Test",
            "subsidiary_id": SUBSIDIARY,
        }
        data.update(overrides)
        return employee_repository.create_or_update(Employee(**data))
    return _make


@pytest.fixture
def directory(make_employee):
    """A small organisation.

    executive: ceo
    finance: fin-head (head, finance-manager) <- credit, fin-officer; suspended credit controller
    business-development: sales-mgr (head) <- sales-rep
    hr: hr (head, hr-manager)
    production: prod-head (head, production-supervisor) <- quality (quality-manager)
    """
    employees = [
        make_employee("emp-ceo", department_id="executive", position_title="Chief Executive Officer",
                      access_roles=["ceo"]),
        make_employee("emp-fin-head", department_id="finance", position_title="Head of Finance",
                      is_department_head=True, access_roles=["finance-manager"], reporting_to="emp-ceo"),
        make_employee("emp-credit", department_id="finance", position_title="Credit Controller",
                      access_roles=["credit-controller"], reporting_to="emp-fin-head", external_id="auth-credit"),
        make_employee("emp-fin-officer", department_id="finance", position_title="Finance Officer",
                      access_roles=["finance-officer"], reporting_to="emp-fin-head"),
        make_employee("emp-suspended", department_id="finance", position_title="Credit Controller",
                      access_roles=["credit-controller"], employment_status="suspended"),
        make_employee("emp-sales-mgr", department_id="business-development", position_title="Head of Sales",
                      is_department_head=True, access_roles=["sales-manager"], reporting_to="emp-ceo"),
        make_employee("emp-sales-rep", department_id="business-development", position_title="Sales Representative",
                      access_roles=["sales-rep"], reporting_to="emp-sales-mgr"),
        make_employee("emp-hr", department_id="hr", position_title="HR Manager", is_department_head=True,
                      access_roles=["hr-manager"], reporting_to="emp-ceo"),
        make_employee("emp-prod-head", department_id="production", position_title="Production Supervisor",
                      is_department_head=True, access_roles=["production-supervisor"], reporting_to="emp-ceo"),
        make_employee("emp-quality", department_id="production", position_title="Quality Lead",
                      access_roles=["quality-manager"], reporting_to="emp-prod-head"),
    ]
    return {e.id: e for e in employees}


@pytest.fixture
def dispatcher():
    return InMemoryNotificationDispatcher()


@pytest.fixture
def make_event():
    """Factory for business events."""
    def _make(event_type: str, payload: dict, **overrides) -> BusinessEvent:
        metadata = {"subsidiary_id": SUBSIDIARY}
        metadata.update(overrides.pop("metadata", {}))
        trigger_user = overrides.pop("trigger_user", None)
        data = {
            "id": str(uuid.uuid4()),
            "event_type": event_type,
            "category": event_type.split(".")[0],
            "source": EventSource(type="system", id="erp"),
            "trigger": EventTrigger(type="user", id=trigger_user) if trigger_user else None,
            "payload": payload,
            "metadata": EventMetadata(**metadata),
            "created_at": datetime(2026, 3, 2, 7, 0),  # Monday 10:00 in Kampala
        }
        data.update(overrides)
        return BusinessEvent(**data)
    return _make


@pytest.fixture
def invoice_overdue_payload():
    return {
        "invoiceId": "INV-1042",
        "customerId": "cust-7",
        "customerName": "Acme Ltd",
        "invoiceAmount": 2_500_000,
        "outstandingAmount": 2_500_000,
        "currency": "UGX",
        "daysOverdue": 10,
    }


@pytest.fixture
def test_client(db_session: Session):
    """Create a FastAPI test client with overridden database dependency."""
    from opsflow.api.app import app
    from opsflow.database.database import get_db

    # Override the get_db dependency to use our test database session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client

    # Clean up dependency overrides
    app.dependency_overrides.clear()
