"""
tests/conftest.py -- Shared test fixtures for the API integration tests.

This module provides:
  - _make_test_store(): creates an isolated in-memory AuthStore with seeded roles
  - _patch_lifespan(): wires the test store into app.state, bypassing real startup
  - api_context: module-scoped TestClient + store + users + session tokens
  - client: the same TestClient with its cookie jar emptied before each test
  - store: a fresh in-memory AuthStore for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

The session cookie is Secure, so the TestClient talks https; otherwise the
cookie jar would never send a cookie set by /auth/login.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import DEFAULT_ROLES, AuthStore
from auth.tokens import create_session_token, hash_password

ADMIN_ROLE = DEFAULT_ROLES[0]  # Administrador, ordinal 0
INTERN_ROLE = DEFAULT_ROLES[5]  # Estagiário, no capabilities

ADMIN_PASSWORD = "Admin123!"
INTERN_PASSWORD = "Intern123!"
INACTIVE_PASSWORD = "Inativo123!"


@dataclass
class ApiContext:
    client: TestClient
    store: AuthStore
    admin: User
    intern: User
    inactive: User
    admin_token: str
    intern_token: str


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> AuthStore:
    """Create an isolated named shared-memory store with the default roles seeded.

    Args:
        db_suffix: Unique string appended to the DB name so test modules don't
                   share state.
    """
    store = AuthStore(f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")
    store.seed_default_roles()
    return store


def _add_user(store: AuthStore, **fields) -> User:
    password = fields.pop("password")
    user = User(hashed_password=hash_password(password), **fields)
    user.uuid = store.create_user(user)
    return user


def _patch_lifespan(store: AuthStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_store = store
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_context(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext backed by a store private to the requesting test module.

    Users:
      admin    -- Administrador role (every capability), has cpf and hourly rate
      intern   -- Estagiário role (no capability)
      inactive -- Estagiário role, active=False
    """
    store = _make_test_store(request.module.__name__.replace(".", "_"))
    admin = _add_user(
        store,
        username="admin",
        email="admin@empresa.com.br",
        cpf="111.222.333-44",
        name="Ana Admin",
        address="Rua A, 1",
        hourly_rate=150.0,
        password=ADMIN_PASSWORD,
        auth_uuid=ADMIN_ROLE.uuid,
    )
    intern = _add_user(
        store,
        username="estagiario",
        email="estagiario@empresa.com.br",
        cpf="555.666.777-88",
        name="Edu Estagiário",
        hourly_rate=20.0,
        password=INTERN_PASSWORD,
        auth_uuid=INTERN_ROLE.uuid,
    )
    inactive = _add_user(
        store,
        username="inativo",
        email="inativo@empresa.com.br",
        password=INACTIVE_PASSWORD,
        auth_uuid=INTERN_ROLE.uuid,
        active=False,
    )

    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, base_url="https://testserver", raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            store=store,
            admin=admin,
            intern=intern,
            inactive=inactive,
            admin_token=create_session_token(admin.uuid, admin.auth_uuid),
            intern_token=create_session_token(intern.uuid, intern.auth_uuid),
        )

    store.close()


@pytest.fixture
def client(api_context: ApiContext) -> TestClient:
    """The module's TestClient with no cookie left over from a previous test."""
    api_context.client.cookies.clear()
    return api_context.client


@pytest.fixture
def store() -> Generator[AuthStore, None, None]:
    """Fresh single-connection in-memory store with the default roles seeded."""
    s = AuthStore("sqlite:///:memory:")
    s.seed_default_roles()
    yield s
    s.close()
