"""
Onboarding and Auth API Tests
=============================

First-admin setup, signup gating, login/refresh, /me and dev mode.
"""

import pytest

from legal_backend.auth import (
    DEV_ADMIN,
    SetupInProgressError,
    _setup_lock,
    create_first_admin,
    get_setup_status,
    is_signup_enabled,
)
from legal_backend.config import get_settings
from legal_backend.db import ActivityLog, User

from conftest import ADMIN, MEMBER, bearer, signup


class TestFirstUserSetup:
    def test_status_before_any_user(self, client):
        data = client.get("/api/auth/status").json()
        assert data["hasUsers"] is False
        assert data["isFirstUser"] is True
        assert data["setupInProgress"] is False

    def test_first_signup_becomes_admin_and_closes_signup(self, client, db):
        data = signup(client, ADMIN)
        assert data["isFirstUser"] is True
        assert data["user"]["role"] == "admin"
        assert data["token_type"] == "bearer"
        assert data["access_token"]

        status = client.get("/api/auth/status").json()
        assert status["hasUsers"] is True
        assert status["signupEnabled"] is False

        assert db.query(ActivityLog).filter(ActivityLog.action == "setup.first_admin").count() == 1

    def test_second_signup_rejected_while_disabled(self, client):
        signup(client, ADMIN)
        response = client.post("/api/auth/signup", json=MEMBER)
        assert response.status_code == 403
        assert "disabled" in response.json()["error"]

    def test_signup_open_gives_default_role(self, client, admin_headers):
        client.put("/api/settings/signup", json={"enabled": True}, headers=admin_headers)
        data = signup(client, MEMBER)
        assert data["isFirstUser"] is False
        assert data["user"]["role"] == "user"

    def test_duplicate_email_rejected(self, client, admin_headers):
        client.put("/api/settings/signup", json={"enabled": True}, headers=admin_headers)
        response = client.post("/api/auth/signup", json={**MEMBER, "email": ADMIN["email"]})
        assert response.status_code == 400

    def test_setup_in_progress_is_503_with_retry(self, client):
        _setup_lock.acquire()
        try:
            response = client.post("/api/auth/signup", json=ADMIN)
        finally:
            _setup_lock.release()
        assert response.status_code == 503
        assert response.json()["retryAfter"] == 2

    def test_create_first_admin_twice_raises_already_setup(self, client, db):
        signup(client, ADMIN)
        from legal_backend.auth import AlreadySetupError
        with pytest.raises(AlreadySetupError):
            create_first_admin(db, "other@lawfirm.com", "password-123", "Other")

    def test_lock_held_raises_in_progress(self, db):
        _setup_lock.acquire()
        try:
            with pytest.raises(SetupInProgressError):
                create_first_admin(db, ADMIN["email"], ADMIN["password"], ADMIN["name"])
        finally:
            _setup_lock.release()
        assert get_setup_status(db)["isFirstUser"] is True


class TestSignupValidation:
    @pytest.mark.parametrize("body, message", [
        ({"email": "a@lawfirm.com", "password": "password-1"}, "Email, password, and name are required"),
        ({"email": "not-an-email", "password": "password-1", "name": "A"}, "Invalid email format"),
        ({"email": "a@lawfirm.com", "password": "short", "name": "A"}, "Password must be at least 8 characters"),
    ])
    def test_rejects_bad_input(self, client, body, message):
        response = client.post("/api/auth/signup", json=body)
        assert response.status_code == 400
        assert response.json()["error"] == message

    def test_rejects_password_over_bcrypt_limit(self, client):
        response = client.post("/api/auth/signup", json={**ADMIN, "password": "x" * 73})
        assert response.status_code == 400
        assert "too long" in response.json()["error"]


class TestLoginAndTokens:
    def test_login_returns_tokens(self, client):
        signup(client, ADMIN)
        response = client.post("/api/auth/login", json={"email": "ADMIN@lawfirm.com", "password": ADMIN["password"]})
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == ADMIN["email"]
        assert data["refresh_token"]

    def test_wrong_password_is_401(self, client):
        signup(client, ADMIN)
        response = client.post("/api/auth/login", json={"email": ADMIN["email"], "password": "wrong-password"})
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"

    def test_refresh_requires_refresh_token(self, client):
        data = signup(client, ADMIN)
        ok = client.post("/api/auth/refresh", json={"refreshToken": data["refresh_token"]})
        assert ok.status_code == 200
        assert ok.json()["access_token"]

        bad = client.post("/api/auth/refresh", json={"refreshToken": data["access_token"]})
        assert bad.status_code == 401

    def test_me_reports_effective_permissions(self, client, admin_headers):
        data = client.get("/api/auth/me", headers=admin_headers).json()
        assert data["isAdmin"] is True
        assert data["permissions"]["vaults"]["create"] is True

    def test_me_without_token_is_401(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_garbage_token_is_401(self, client):
        response = client.get("/api/auth/me", headers=bearer("not-a-jwt"))
        assert response.status_code == 401


class TestDevMode:
    def test_dev_credentials_hidden_in_production(self, client):
        response = client.get("/api/auth/dev-credentials")
        assert response.status_code == 404
        assert response.json()["error"] == "Not available in production"

    def test_dev_mode_seeds_admin(self, client, monkeypatch, db):
        monkeypatch.setenv("IS_DEV", "true")
        get_settings.cache_clear()

        data = client.get("/api/auth/dev-credentials").json()
        assert data["isDevMode"] is True
        assert data["credentials"]["email"] == DEV_ADMIN["email"]

        assert db.query(User).filter(User.email == DEV_ADMIN["email"]).count() == 1
        assert is_signup_enabled(db) is True

    def test_dev_mode_acts_as_admin_without_token(self, client, monkeypatch):
        monkeypatch.setenv("IS_DEV", "true")
        get_settings.cache_clear()

        data = client.get("/api/auth/me").json()
        assert data["email"] == DEV_ADMIN["email"]
        assert data["isAdmin"] is True


class TestTokens:
    def test_token_type_is_checked(self, db):
        from legal_backend.auth import decode_token, issue_tokens

        user = User(id="u-tok", email="tok@lawfirm.com", name="Tok", role="user")
        tokens = issue_tokens(user)

        assert decode_token(tokens["access_token"])["sub"] == "u-tok"
        assert decode_token(tokens["access_token"], expected_type="refresh") is None
        assert decode_token(tokens["refresh_token"], expected_type="refresh")["type"] == "refresh"

    def test_secret_comes_from_settings(self, db, monkeypatch):
        from legal_backend.auth import decode_token, issue_tokens

        user = User(id="u-tok", email="tok@lawfirm.com", name="Tok", role="user")
        token = issue_tokens(user)["access_token"]

        monkeypatch.setenv("JWT_SECRET_KEY", "rotated")
        get_settings.cache_clear()
        assert decode_token(token) is None
        assert any("JWT_SECRET_KEY" in w for w in get_settings().model_copy(
            update={"jwt_secret_key": "dev-secret-key-change-in-production"}
        ).validate_config())
