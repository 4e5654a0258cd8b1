"""
AppTrack Test Configuration

Shared fixtures for all tests.
"""
import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APPTRACK_DB_PATH", "/tmp/apptrack_test.db")

from datetime import timedelta
from typing import Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from apptrack.auth import hash_password
from apptrack.config import get_config
from apptrack.db.database import get_engine, set_app_engine
from apptrack.db.models import Application, Base, User, utcnow
from apptrack.services import ai, suggestions

CRON_SECRET = "test-cron-secret"


# =============================================================================
# FIXTURES: Database
# =============================================================================

@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite file engine for each test."""
    eng = get_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as sess:
        yield sess


@pytest.fixture
def user(session) -> User:
    account = User(
        email="jane@example.com",
        password_hash=hash_password("secret123"),
        first_name="Jane",
        last_name="Doe",
        location="Berlin",
        skills=["Python", "SQL"],
        preferences={},
    )
    session.add(account)
    session.commit()
    return account


@pytest.fixture
def make_application(session, user):
    """Factory for persisted applications owned by `user`."""

    def _make(**fields) -> Application:
        values = {"company": "Acme Corp", "position": "Backend Engineer", "status": "Applied"}
        values.update(fields)
        app = Application(user_id=user.id, **values)
        session.add(app)
        session.flush()
        return app

    return _make


# =============================================================================
# FIXTURES: Config / process state
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point backups at tmp_path, set a cron secret, disable AI."""
    config = get_config()
    monkeypatch.setattr(config.backup, "local_dir", str(tmp_path / "backups"))
    monkeypatch.setattr(config.backup, "storage", "local")
    monkeypatch.setattr(config.notifications, "cron_secret", CRON_SECRET)
    monkeypatch.setattr(config.notifications.email, "enabled", False)
    monkeypatch.setattr(config.ai, "api_key", "")
    return config


@pytest.fixture(autouse=True)
def reset_caches():
    suggestions.get_cache().reset()
    ai.reset_rate_limiter()
    yield
    suggestions.get_cache().reset()
    ai.reset_rate_limiter()


# =============================================================================
# FIXTURES: HTTP client
# =============================================================================

@pytest.fixture
def client(engine):
    from apptrack.main import app

    set_app_engine(engine)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client) -> Dict[str, str]:
    """Register and sign in a user; return bearer headers."""
    client.post("/api/auth/register", json={
        "email": "alex@example.com",
        "password": "secret123",
        "first_name": "Alex",
        "last_name": "Kim",
    })
    response = client.post("/api/auth/signin", json={
        "email": "alex@example.com",
        "password": "secret123",
    })
    token = response.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def cron_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}


# =============================================================================
# FIXTURES: Sample Data
# =============================================================================

@pytest.fixture
def sample_application() -> Dict:
    """Application create payload."""
    return {
        "company": "Globex",
        "position": "Senior Python Developer",
        "location": "Remote",
        "job_type": "Full-time",
        "status": "Applied",
        "priority": "High",
        "applied_date": (utcnow() - timedelta(days=1)).isoformat(),
        "job_url": "https://jobs.globex.com/123",
        "tags": ["python", "remote"],
    }


@pytest.fixture
def create_application(client, auth_headers, sample_application):
    """POST an application (payload overrides via kwargs) and return its data."""

    def _create(**overrides) -> Dict:
        payload = {**sample_application, **overrides}
        response = client.post("/api/applications", json=payload, headers=auth_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _create
