from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from issue_tracker.core.config import settings
from issue_tracker.core.errors import install_exception_handlers
from issue_tracker.core.roles import Role
from issue_tracker.core.security import create_access_token, decode_token, hash_password, verify_password
from issue_tracker.core.seed import seed_admin
from issue_tracker.core.settings import settings as app_settings


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_validation_errors_are_400_with_fields(client):
    r = client.post("/auth/login", json={"email": "a@example.com"})
    assert r.status_code == 400
    body = r.json()
    assert body["status"] == 400
    assert [e["field"] for e in body["errors"]] == ["password"]


def test_missing_token_is_401(client):
    r = client.get("/ticket")
    assert r.status_code == 401
    assert r.json()["status"] == 401


def _crashing_app() -> TestClient:
    app = FastAPI()
    install_exception_handlers(app)

    @app.get("/boom")
    def boom():
        raise RuntimeError("kaput")

    return TestClient(app, raise_server_exceptions=False)


def test_unhandled_error_hides_detail_outside_development():
    r = _crashing_app().get("/boom")
    assert r.status_code == 500
    assert r.json() == {"status": 500, "message": "An unexpected error occurred"}


def test_unhandled_error_detail_in_development(monkeypatch):
    monkeypatch.setattr(settings, "environment", "development")
    r = _crashing_app().get("/boom")
    assert r.json()["detail"] == "kaput"


class TestTokens:
    def test_roundtrip_claims(self):
        token = create_access_token(user_id=7, name="Rita", email="rita@example.com", role="Rep")
        claims = decode_token(token)
        assert (claims["sub"], claims["role"], claims["iss"]) == ("7", "Rep", settings.jwt_issuer)

    def test_expired_token_rejected(self):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": "1", "iss": settings.jwt_issuer, "exp": int(past.timestamp())},
            settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_token(token)

    def test_password_hashing(self):
        hashed = hash_password("hunter22")
        assert verify_password("hunter22", hashed)
        assert not verify_password("hunter23", hashed)
        assert not verify_password("hunter22", "not-a-hash")
        assert not verify_password("hunter22", "")


class TestSeedAdmin:
    def test_creates_admin(self, db, monkeypatch):
        monkeypatch.setattr(app_settings, "ADMIN_EMAIL", "Root@Example.com")
        admin = seed_admin(db)
        assert admin.email == "root@example.com"
        assert admin.role == Role.ADMIN.value
        assert verify_password(app_settings.ADMIN_PASSWORD, admin.password_hash)

    def test_promotes_existing_account(self, db, monkeypatch, user):
        monkeypatch.setattr(app_settings, "ADMIN_EMAIL", user.email)
        promoted = seed_admin(db)
        assert promoted.id == user.id
        assert promoted.role == Role.ADMIN.value
