"""
Pytest fixtures for testing
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from subtrack.infrastructure.db.session import Base
from subtrack.infrastructure.db import models  # noqa: F401  (registers tables on Base)
from subtrack.infrastructure.db.models import FxRate, User


OWNER = "owner@example.com"


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across threads (TestClient runs handlers in a pool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def owner_email():
    return OWNER


@pytest.fixture
def user(db_session) -> User:
    """Onboarded user with USD as primary currency"""
    u = User(
        email=OWNER,
        name="Owner",
        password_hash="x",
        primary_currency="USD",
        timezone="UTC",
        onboarding_done=True,
    )
    db_session.add(u)
    db_session.commit()
    return u


def add_fx_snapshot(db, rates: dict[str, float], fetched_at: datetime, is_stale: bool = False, base: str = "USD"):
    """Insert one snapshot (base row included) directly into fx_rates."""
    db.add(FxRate(base=base, target=base, rate=1.0, fetched_at=fetched_at, is_stale=is_stale))
    for target, rate in rates.items():
        db.add(FxRate(base=base, target=target, rate=rate, fetched_at=fetched_at, is_stale=is_stale))
    db.commit()


@pytest.fixture
def fx_snapshot(db_session):
    """Fresh snapshot: 1 USD = 0.9 EUR = 0.8 GBP = 150 JPY"""
    fetched_at = datetime(2026, 3, 1, 6, 0, tzinfo=timezone.utc)
    add_fx_snapshot(db_session, {"EUR": 0.9, "GBP": 0.8, "JPY": 150.0}, fetched_at)
    return fetched_at


@pytest.fixture
def write_fx(db_session):
    """Helper fixture: write_fx({"EUR": 0.9}, fetched_at, is_stale=False)"""
    def _write(rates, fetched_at, is_stale=False):
        add_fx_snapshot(db_session, rates, fetched_at, is_stale=is_stale)
    return _write
