"""
tests/test_auth_api.py -- HTTP integration tests for the auth routes.

These tests exercise the full stack: FastAPI routing -> JSON body and header
extraction -> handlers -> UserStore -> JSON envelope. They catch regressions
the handler tests cannot see: route paths, status codes set on the real
response, the no-store header, and framework errors wrapped in our envelope.

Fixtures used (from conftest.py):
  - api_client: TestClient on the real app, store seeded with one user per role
  - suite: the AuthTestSuite behind api_client
  - client_factory: builds a TestClient around any store (used with a broken one)
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.limiter import limiter
from auth.models import Role
from auth.store import UserStore
from core.config import get_settings

if TYPE_CHECKING:
    from tests.conftest import AuthTestSuite


class TestLoginRoute:
    def test_login_returns_user_and_tokens(self, api_client: TestClient, suite: AuthTestSuite) -> None:
        admin = suite.user_with_role(Role.ADMIN)
        resp = api_client.post("/auth/login", json={"email": admin.email, "password": admin.password})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["success"] is True
        assert data["data"]["user"]["email"] == admin.email
        assert data["data"]["user"]["role"] == "ADMIN"
        assert data["data"]["accessToken"]
        assert data["data"]["refreshToken"]
        assert resp.headers["cache-control"] == "no-store"

    def test_login_invalid_credentials(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/login", json={"email": "invalid@example.com", "password": "wrongpassword"})
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "error": "Invalid credentials", "code": "INVALID_CREDENTIALS"}

    def test_login_wrong_method(self, api_client: TestClient) -> None:
        resp = api_client.get("/auth/login")
        assert resp.status_code == 405
        assert resp.json() == {"success": False, "error": "Method not allowed"}
        assert resp.headers["allow"] == "POST"

    def test_login_with_non_json_body(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/login", content=b"email=a&password=b", headers={"Content-Type": "text/plain"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Email and password are required"


class TestRefreshRoute:
    def test_refresh_flow(self, api_client: TestClient, suite: AuthTestSuite) -> None:
        user = suite.user_with_role(Role.USER)
        login = api_client.post("/auth/login", json={"email": user.email, "password": user.password}).json()
        resp = api_client.post("/auth/refresh", json={"refreshToken": login["data"]["refreshToken"]})
        assert resp.status_code == 200
        new_access = resp.json()["data"]["accessToken"]

        me = api_client.get("/auth/me", headers={"Authorization": f"Bearer {new_access}"})
        assert me.status_code == 200
        assert me.json()["data"]["user"]["email"] == user.email

    def test_refresh_without_body(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/refresh")
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "Refresh token is required"}

    def test_refresh_invalid_token(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/refresh", json={"refreshToken": "invalid-token"})
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid or expired token"


class TestMeRoute:
    def test_me_with_token(self, api_client: TestClient, suite: AuthTestSuite) -> None:
        sup = suite.user_with_role(Role.SUPER_ADMIN)
        resp = api_client.get("/auth/me", headers=suite.authenticated_headers(sup))
        assert resp.status_code == 200
        user = resp.json()["data"]["user"]
        assert user["email"] == sup.email
        assert user["role"] == "SUPER_ADMIN"
        assert user["id"] == sup.id

    def test_me_without_token(self, api_client: TestClient) -> None:
        resp = api_client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "error": "Authentication required"}

    def test_me_wrong_method(self, api_client: TestClient) -> None:
        resp = api_client.post("/auth/me")
        assert resp.status_code == 405
        assert resp.json()["error"] == "Method not allowed"
        assert resp.headers["allow"] == "GET"


class TestLogoutAndUsersRoutes:
    def test_logout_then_refresh_fails(self, api_client: TestClient, suite: AuthTestSuite) -> None:
        admin = suite.user_with_role(Role.ADMIN)
        resp = api_client.post("/auth/logout", headers=suite.authenticated_headers(admin))
        assert resp.status_code == 200
        resp = api_client.post("/auth/refresh", json={"refreshToken": admin.refresh_token})
        assert resp.status_code == 401

    def test_users_listing_requires_admin(self, api_client: TestClient, suite: AuthTestSuite) -> None:
        user = suite.user_with_role(Role.USER)
        admin = suite.user_with_role(Role.ADMIN)
        assert api_client.get("/auth/users", headers=suite.authenticated_headers(user)).status_code == 403
        resp = api_client.get("/auth/users", headers=suite.authenticated_headers(admin))
        assert resp.status_code == 200
        assert len(resp.json()["data"]["users"]) == len(suite.users)


class TestErrorEnvelope:
    def test_unknown_path_uses_envelope(self, api_client: TestClient) -> None:
        resp = api_client.get("/auth/nope")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Not Found"}

    def test_store_failure_is_a_500_not_a_401(self, client_factory) -> None:
        broken = MagicMock(spec=UserStore)
        broken.find_user_by_email.side_effect = OperationalError("SELECT", {}, Exception("database is down"))
        with client_factory(broken, raise_server_exceptions=False) as client:
            resp = client.post("/auth/login", json={"email": "a@example.com", "password": "secret"})
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "An unexpected error occurred.", "code": "INTERNAL_ERROR"}

    @pytest.mark.parametrize(("method", "path", "allow"), [("HEAD", "/auth/me", "GET"), ("OPTIONS", "/auth/login", "POST")])
    def test_head_and_options_get_allow_header(self, api_client: TestClient, method: str, path: str, allow: str) -> None:
        resp = api_client.request(method, path)
        assert resp.status_code == 405
        assert resp.headers["allow"] == allow


class TestLoginRateLimit:
    @pytest.fixture(autouse=True)
    def fresh_counters(self):
        limiter.reset()
        yield
        limiter.reset()

    def _exhaust(self, client: TestClient, times: int) -> None:
        body = {"email": "nobody@example.com", "password": "wrong-password"}
        for _ in range(times):
            assert client.post("/auth/login", json=body).status_code == 401

    def test_login_over_limit_returns_429_envelope(self, api_client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "login_rate_limit", "3/minute")
        self._exhaust(api_client, 3)
        resp = api_client.post("/auth/login", json={"email": "nobody@example.com", "password": "wrong-password"})
        assert resp.status_code == 429
        assert resp.json() == {"success": False, "error": "Too many requests", "code": "RATE_LIMITED"}
        assert resp.headers["retry-after"] == "60"

    def test_retry_after_matches_limit_window(self, api_client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(get_settings(), "login_rate_limit", "2/hour")
        self._exhaust(api_client, 2)
        resp = api_client.post("/auth/login", json={"email": "nobody@example.com", "password": "wrong-password"})
        assert resp.status_code == 429
        assert resp.headers["retry-after"] == "3600"
