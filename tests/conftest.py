"""
Shared fixtures: an in-memory SQLite database per test, a TestClient wired
to it, and small factories for accounts, roles and entitlement records.
"""
import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ENV", "test")

from app.core.config import settings
from app.core.entitlement_rules import PRIVILEGED_ROLE
from app.db.base import Base
from app.db.session import get_db
from app.dependencies.auth import verify_supabase_token
from app.main import app
from app.models.profile import Profile
from app.models.user import User
from app.models.user_role import UserRole

WEBHOOK_TOKEN = "test-webhook-token"


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    monkeypatch.setattr(settings, "payment_webhook_token", WEBHOOK_TOKEN)
    monkeypatch.setattr(settings, "supabase_url", "https://project.supabase.co")
    monkeypatch.setattr(settings, "supabase_service_role_key", "service-role-key")
    monkeypatch.setattr(settings, "supabase_jwt_secret", "test-jwt-secret-with-enough-length-for-hs256")
    monkeypatch.setattr(settings, "resend_api_key", "re_test")
    monkeypatch.setattr(settings, "upstream_timeout_seconds", 2.0)
    return settings


@pytest.fixture
def auth_payload():
    """Verified token claims for the caller; tests point it at their user."""
    return {"sub": "caller-sub", "email": "caller@example.com"}


@pytest.fixture
def client(db_session, session_factory, auth_payload, monkeypatch):
    def override_get_db():
        yield db_session

    # Background notifications open their own session
    monkeypatch.setattr("app.services.notifications.SessionLocal", session_factory)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[verify_supabase_token] = lambda: auth_payload
    # Not used as a context manager: startup (create_all + migrations) stays off
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make_user(email=None, supabase_id=None, full_name="Maria Silva",
                   created_at=None, admin=False, **profile_fields):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            supabase_id=supabase_id or f"sub-{n}",
            email=(email or f"user{n}@example.com").lower(),
            full_name=full_name,
            created_at=created_at or datetime.utcnow(),
        )
        user.profile = Profile(**profile_fields)
        if admin:
            user.roles.append(UserRole(role=PRIVILEGED_ROLE))
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def login_as(auth_payload):
    def _login_as(user):
        auth_payload["sub"] = user.supabase_id
        auth_payload["email"] = user.email
        return user

    return _login_as


@pytest.fixture
def reload_profile(db_session):
    def _reload(user):
        db_session.expire_all()
        return db_session.query(Profile).filter(Profile.user_id == user.id).one()

    return _reload
