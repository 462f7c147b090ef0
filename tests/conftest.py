# tests/conftest.py
import os
from datetime import datetime, timedelta

# Must be set before the application settings are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from inbound import clock
from inbound.database import Base, get_db
from inbound.main import app
from inbound.scanner.api import InboundApi
from inbound.services import sessions


class FakeClock:
    """Manually advanced replacement for ``inbound.clock.utcnow``."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def fake_clock(monkeypatch):
    fake = FakeClock(datetime(2024, 5, 1, 8, 0, 0))
    monkeypatch.setattr(clock, "utcnow", fake)
    return fake


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory, fake_clock):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory, fake_clock):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def api(client):
    return InboundApi(client=client)


@pytest.fixture
def claim(db):
    """Claim helper with sensible defaults."""
    def _claim(outer="OB1", inner="IB1", qty=3, operator="alice"):
        return sessions.claim_session(db, outer, inner, qty, operator)
    return _claim
