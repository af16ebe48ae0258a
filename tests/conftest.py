"""
tests/conftest.py -- Shared test fixtures for the site user portal.

This module provides:
  - user_store: an ephemeral SiteUserStore, fresh for every test
  - client: TestClient over the assembled app (asgi.app) wired to user_store,
    follow_redirects=False so tests can assert on Location headers
  - login_as: put a signed session cookie for any principal on the client
    (the principal does not have to exist in the store)
  - csrf_token: fetch a page and pull the session's CSRF token out of it

Isolation: every test gets its own in-memory SQLite database, so writes never
leak between tests and nothing needs rolling back. StaticPool keeps that
database on one connection shared by every thread, because TestClient runs
sync handlers in a thread pool.

DEBUG and RATE_LIMIT_ENABLED must be set before any app import so
get_settings() auto-generates SECRET_KEY and the limiter starts disabled.
"""

from __future__ import annotations

import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager

# Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from asgi import app
from auth.models import Authority
from auth.store import SiteUserStore
from auth.tokens import ACCESS_TOKEN_COOKIE, create_access_token

_CSRF_INPUT = re.compile(r'name="_csrf" value="([^"]+)"')


def _patch_lifespan(user_store: SiteUserStore):
    """Return a lifespan that installs the test store instead of opening the real DB."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        yield

    return test_lifespan


@pytest.fixture
def user_store() -> Generator[SiteUserStore, None, None]:
    store = SiteUserStore("sqlite://", poolclass=StaticPool)
    yield store
    store.close()


@pytest.fixture
def client(user_store: SiteUserStore) -> Generator[TestClient, None, None]:
    app.router.lifespan_context = _patch_lifespan(user_store)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def login_as(client: TestClient):
    """Return a function that authenticates the client as any principal.

    Equivalent to a mock user: a signed session cookie is written for the
    given username and authority without touching the store.
    """

    def _login(username: str = "admin", authority: Authority = Authority.ADMIN) -> str:
        token = create_access_token(username, authority, expire_seconds=3600)
        client.cookies.set(ACCESS_TOKEN_COOKIE, token)
        return token

    return _login


@pytest.fixture
def csrf_token(client: TestClient):
    """Return a function that GETs a page and extracts its CSRF token."""

    def _fetch(path: str = "/register") -> str:
        resp = client.get(path)
        assert resp.status_code == 200, f"GET {path} returned {resp.status_code}"
        match = _CSRF_INPUT.search(resp.text)
        assert match, f"No CSRF field rendered on {path}"
        return match.group(1)

    return _fetch
