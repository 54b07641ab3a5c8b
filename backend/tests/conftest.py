"""
Test configuration and shared fixtures for the scheduling test suite.

Uses an in-memory SQLite database per test. Each test gets a fresh schema,
so tests are isolated even when the code under test commits.
"""

import os

# Must be set before core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_RENEW_SCHEDULER_ENABLED", "false")

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base, get_db
from models import Appointment, Patient

OWNER_ID = 1
OTHER_OWNER_ID = 2

# Monday 2026-03-02 09:00 in America/Sao_Paulo (UTC-3, no DST)
FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """
    Create an in-memory database engine for one test.

    StaticPool keeps the single connection alive so every session (and the
    FastAPI test client) sees the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Provide a database session configured like the application's."""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for engine tests."""
    return FIXED_NOW


@pytest.fixture
def patient_factory(db_session):
    """Create and commit patients with sensible defaults."""
    def create(**overrides) -> Patient:
        values = {
            "user_id": OWNER_ID,
            "full_name": "Ana Souza",
            "session_frequency": "weekly",
            "session_price": Decimal("150.00"),
            "auto_renew_sessions": False,
            "active": True,
        }
        values.update(overrides)
        patient = Patient(**values)
        db_session.add(patient)
        db_session.commit()
        return patient
    return create


@pytest.fixture
def session_factory(db_session):
    """Create and commit sessions for a patient."""
    def create(
        patient: Patient,
        start: datetime,
        duration_minutes: int = 50,
        payment_status: str = "pending",
        price=None,
        session_type: str = "Individual Session",
    ) -> Appointment:
        session = Appointment(
            user_id=patient.user_id,
            patient_id=patient.id,
            start_time=start,
            duration_minutes=duration_minutes,
            session_type=session_type,
            price=price,
            payment_status=payment_status,
        )
        db_session.add(session)
        db_session.commit()
        return session
    return create


@pytest.fixture
def client(db_session):
    """FastAPI test client bound to the test database, authenticated as OWNER_ID."""
    from fastapi.testclient import TestClient
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager so the lifespan (table creation, scheduler) does not run
    test_client = TestClient(app, headers={"X-User-Id": str(OWNER_ID)})

    yield test_client

    app.dependency_overrides = {}


def future_at(days: int, hour: int, minute: int = 0) -> datetime:
    """A UTC instant ``days`` days from the real current time at a fixed hour."""
    base = datetime.now(timezone.utc) + timedelta(days=days)
    return base.replace(hour=hour, minute=minute, second=0, microsecond=0)


@pytest.fixture(name="future_at")
def future_at_fixture():
    """Helper building UTC instants relative to the real clock (for API tests)."""
    return future_at
