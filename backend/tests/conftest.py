import os
from datetime import datetime, timedelta

import pytest

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ENVIRONMENT"] = "development"
os.environ.pop("REDIS_URL", None)

from fastapi.testclient import TestClient

from app.config import get_settings
from app.database import Base, SessionLocal, engine
from app.main import create_app
from app.models.user import UserCreate
from app.services import clock
from app.services.auth_service import AuthService
from app.services.rate_limit import InMemoryWindowStore, build_rate_limiters

PASSWORD = "Abc12345!"

DOCTOR = {
    "name": "Dana Doctor",
    "email": "d@x.com",
    "password": PASSWORD,
    "phone": "+1 555 0100",
    "role": "doctor",
    "specialization": "Cardiology",
    "license_number": "LIC-0001",
}

PATIENT = {
    "name": "Pat Patient",
    "email": "p@x.com",
    "password": PASSWORD,
    "phone": "+1 555 0101",
    "role": "patient",
    "date_of_birth": "1990-04-12",
    "gender": "female",
    "blood_type": "O+",
    "emergency_contact": {"name": "Sam Patient", "phone": "+1 555 0102", "relationship": "sibling"},
}

ADMIN = {
    "name": "Ada Admin",
    "email": "a@x.com",
    "password": PASSWORD,
    "phone": "+1 555 0103",
    "role": "admin",
}


class FrozenClock:
    """Stands in for ``app.services.clock.utcnow``; moves only when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def frozen_clock(monkeypatch):
    fake = FrozenClock(datetime.utcnow().replace(microsecond=0))
    monkeypatch.setattr(clock, "utcnow", fake)
    return fake


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def build_client(audit_logger=None, store=None, **overrides) -> TestClient:
    settings = get_settings().model_copy(update=overrides)
    limiters = build_rate_limiters(settings, store if store is not None else InMemoryWindowStore())
    return TestClient(create_app(settings=settings, rate_limiters=limiters, audit_logger=audit_logger))


@pytest.fixture
def client(db):
    """Client with rate limits high enough to stay out of the way."""
    return build_client(
        auth_rate_limit=1000, password_reset_rate_limit=1000, sensitive_rate_limit=1000
    )


@pytest.fixture
def limited_client(db):
    """Client with the production rate limits."""
    return build_client()


def make_user(db, payload, **overrides):
    data = dict(payload, **overrides)
    user, _ = AuthService.register(db, UserCreate(**data))
    return user


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def login(client, email, password=PASSWORD) -> str:
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["data"]["token"]
