"""Shared fixtures: in-memory database, API client and per-role users."""

from __future__ import annotations

import os

# Configure before the application modules read their settings.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("NOTIFIER_ENABLED", "false")
os.environ.setdefault("AUTO_DB_BOOTSTRAP", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime
from functools import lru_cache
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from issue_tracker.core.roles import Role
from issue_tracker.core.security import create_access_token, hash_password
from issue_tracker.core.settings import settings as storage_settings
from issue_tracker.db import build_engine, get_session
from issue_tracker.main import app
from issue_tracker.models.ticket import Ticket
from issue_tracker.models.user import Base, User
from issue_tracker.services import notifier

PASSWORD = "secret123"
_seq = count(1)


@lru_cache(maxsize=1)
def password_hash() -> str:
    # bcrypt is slow; hash once per run.
    return hash_password(PASSWORD)


@pytest.fixture()
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture()
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _isolated_side_effects(tmp_path, monkeypatch):
    monkeypatch.setattr(storage_settings, "STORAGE_BACKEND", "local")
    monkeypatch.setattr(storage_settings, "LOCAL_UPLOAD_ROOT", str(tmp_path / "uploads"))
    notifier.clear()
    yield
    notifier.clear()


@pytest.fixture()
def notifier_enabled(monkeypatch):
    monkeypatch.setattr(storage_settings, "NOTIFIER_ENABLED", True)


@pytest.fixture()
def client(session_factory):
    def _override():
        with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_session, None)


@pytest.fixture()
def make_user(db):
    def _make(role: Role = Role.USER, name: str | None = None, email: str | None = None) -> User:
        n = next(_seq)
        user = User(
            name=name or f"{role.value} {n}",
            email=email or f"{role.value.lower()}{n}@example.com",
            password_hash=password_hash(),
            role=role.value,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture()
def make_ticket(db):
    def _make(creator: User, **fields) -> Ticket:
        fields.setdefault("title", "Printer on fire")
        fields.setdefault("description", "Smoke everywhere")
        fields.setdefault("priority", "Medium")
        fields.setdefault("type", "Hardware")
        fields.setdefault("status", "Open")
        created_at = fields.pop("created_at", None) or datetime(2024, 1, 1, 9, 0, 0)
        fields.setdefault("updated_at", created_at)
        ticket = Ticket(created_by_user_id=creator.id, created_at=created_at, **fields)
        db.add(ticket)
        db.commit()
        return ticket

    return _make


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(user_id=user.id, name=user.name, email=user.email, role=user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin(make_user):
    return make_user(Role.ADMIN, name="Ada Admin")


@pytest.fixture()
def rep(make_user):
    return make_user(Role.REP, name="Rita Rep")


@pytest.fixture()
def other_rep(make_user):
    return make_user(Role.REP, name="Rob Rep")


@pytest.fixture()
def user(make_user):
    return make_user(Role.USER, name="Uma User")


@pytest.fixture()
def other_user(make_user):
    return make_user(Role.USER, name="Otto User")


@pytest.fixture()
def headers():
    return auth_headers
