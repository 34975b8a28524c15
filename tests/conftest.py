"""
tests/conftest.py -- Shared test fixtures for SessionGate.

This module provides:
  - AuthTestSuite: explicit setup()/teardown() object owning an isolated
    in-memory UserStore, with helpers to seed users and build auth headers
  - suite: an AuthTestSuite seeded with one user per role
  - api_client: TestClient on the real app, wired to the suite's store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync work in a thread pool. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any auth/core import:
  DEBUG=true            -> get_settings() generates SECRET_KEY instead of raising
  BCRYPT_ROUNDS=4       -> cheapest cost bcrypt accepts; keeps the suite fast
  LOGIN_RATE_LIMIT      -> high enough that repeated logins never hit 429
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "10000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password, issue_token_pair

# Mirrors the accounts every auth test starts from.
SEED_USERS: list[tuple[str, str, Role]] = [
    ("testuser@example.com", "user123", Role.USER),
    ("testadmin@example.com", "admin123", Role.ADMIN),
    ("testsuper@example.com", "super123", Role.SUPER_ADMIN),
]


# ---------------------------------------------------------------------------
# Test suite object
# ---------------------------------------------------------------------------


@dataclass
class SeededUser:
    """A user created by the suite, with the secrets a test needs to act as them."""

    id: int
    email: str
    password: str
    role: Role
    name: str | None
    access_token: str
    refresh_token: str


class AuthTestSuite:
    """Owns one isolated credential store for the duration of a test.

    Usage:
        suite = AuthTestSuite("handlers")
        suite.setup()
        admin = suite.create_user("a@example.com", "secret", Role.ADMIN)
        ...
        suite.teardown()
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.store: UserStore | None = None
        self.users: list[SeededUser] = []

    def setup(self) -> None:
        db_name = f"test_auth_{self.name}_{uuid.uuid4().hex}"
        self.store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")

    def teardown(self) -> None:
        if self.store is None:
            return
        self.store.delete_users([u.email for u in self.users])
        self.store.close()
        self.store = None
        self.users = []

    def create_user(self, email: str, password: str, role: Role, name: str | None = None) -> SeededUser:
        """Insert a user and issue it a token pair, as a prior login would."""
        assert self.store is not None, "call setup() first"
        user_id = self.store.create_user(
            User(email=email, role=role, name=name, hashed_password=hash_password(password))
        )
        user = self.store.find_user_by_id(user_id)
        tokens = issue_token_pair(self.store, user)
        seeded = SeededUser(
            id=user_id,
            email=user.email,
            password=password,
            role=role,
            name=name,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
        )
        self.users.append(seeded)
        return seeded

    def user_with_role(self, role: Role) -> SeededUser:
        return next(u for u in self.users if u.role == role)

    @staticmethod
    def authenticated_headers(user: SeededUser) -> dict[str, str]:
        return {"Authorization": f"Bearer {user.access_token}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def suite() -> Generator[AuthTestSuite, None, None]:
    """Yield a set-up AuthTestSuite seeded with one USER, ADMIN and SUPER_ADMIN."""
    s = AuthTestSuite("auth")
    s.setup()
    for email, password, role in SEED_USERS:
        s.create_user(email, password, role, name=f"Test {role.value}")
    yield s
    s.teardown()


def patch_lifespan(user_store):
    """Return a lifespan that wires `user_store` into app.state instead of opening the real DB."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        yield

    return test_lifespan


@pytest.fixture
def client_factory():
    """Return a function that builds a TestClient for the real app around any store.

    raise_server_exceptions=False lets a test assert on the 500 envelope
    instead of having the exception re-raised into the test.
    """

    def _make(user_store, raise_server_exceptions: bool = True) -> TestClient:
        app.router.lifespan_context = patch_lifespan(user_store)
        return TestClient(app, raise_server_exceptions=raise_server_exceptions)

    return _make


@pytest.fixture
def api_client(suite: AuthTestSuite, client_factory) -> Generator[TestClient, None, None]:
    """Yield a TestClient running the real app against the suite's store."""
    with client_factory(suite.store) as client:
        yield client
