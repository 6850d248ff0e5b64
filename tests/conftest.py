"""Test fixtures for clocksync.

Provides:
- engine / db: in-memory SQLite shared across threads (StaticPool)
- session_factory: sessionmaker bound to the test engine, used by background jobs
- company / other_company: tenants
- make_employee / make_installation / make_enrollment: row factories
- client / auth_headers: FastAPI TestClient wired to the test database
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("RATE_LIMIT", "100000/minute")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clocksync.auth.security import create_access_token
from clocksync.db import Base, get_db, get_session_factory
from clocksync.main import app
from clocksync.models.models import Company, Employee, Enrollment, Installation
from clocksync.schemas.sync import EmployeeFilter


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def company(db) -> Company:
    company = Company(name="Acme Co", short_name="acme")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture()
def other_company(db) -> Company:
    company = Company(name="Globex", short_name="globex")
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@pytest.fixture()
def make_employee(db):
    """Create an employee; cost_centers lists slot values 0..4."""

    def _make(company, account_id, first_name="Ana", last_name="Silva", cost_centers=None, active=True):
        slots = list(cost_centers or [])
        slots += [0] * (5 - len(slots))
        employee = Employee(
            company_id=company.id,
            account_id=account_id,
            first_name=first_name,
            middle_initial="",
            last_name=last_name,
            active=active,
            cost_center_0=slots[0],
            cost_center_1=slots[1],
            cost_center_2=slots[2],
            cost_center_3=slots[3],
            cost_center_4=slots[4],
        )
        db.add(employee)
        db.commit()
        db.refresh(employee)
        return employee

    return _make


@pytest.fixture()
def make_installation(db):
    """Create an installation; ``slots`` maps slot index -> allowed cost center ids."""
    counter = {"n": 0}

    def _make(company, slots=None, name=None):
        counter["n"] += 1
        employee_filter = EmployeeFilter.from_slots(slots or {})
        installation = Installation(
            token=f"install-token-{company.id}-{counter['n']}",
            company_id=company.id,
            display_name=name or f"Clock {counter['n']}",
            employee_filters=employee_filter.model_dump(),
            client_settings={},
        )
        db.add(installation)
        db.commit()
        db.refresh(installation)
        return installation

    return _make


@pytest.fixture()
def make_enrollment(db):
    def _make(company, employee, installation, position=1, active=True, data="template"):
        enrollment = Enrollment(
            company_id=company.id,
            employee_account_id=employee.account_id,
            position=position,
            created_date="2024-01-02T03:04:05Z",
            installation_id=installation.id,
            data=data,
            active=active,
        )
        db.add(enrollment)
        db.commit()
        db.refresh(enrollment)
        return enrollment

    return _make


@pytest.fixture()
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(company) -> dict:
    return {"Authorization": f"Bearer {create_access_token(company.id)}"}
