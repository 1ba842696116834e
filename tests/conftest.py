"""
tests/conftest.py -- Shared test fixtures for wikimd tests.

This module provides:
  - make_test_stores(): isolated in-memory DBs for users + content
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api: module-scoped TestClient plus one seeded account per role
  - user_store / content_store: function-scoped stores for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import:
get_settings() is cached on first use.
"""

from __future__ import annotations

import asyncio
import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set before any auth/core import so get_settings() auto-generates
# SECRET_KEY in dev mode and hashing stays fast.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LIST_ADMIN", "")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password, issue_session
from content.store import ContentStore

_db_counter = itertools.count()

PASSWORDS = {
    "admin": "admin-pass-1",
    "editor": "editor-pass-1",
    "reader": "reader-pass-1",
}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_stores(db_suffix: str) -> tuple[UserStore, ContentStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string in the DB name so test modules don't share
                   state (e.g. 'auth_routes', 'content_routes').
    """
    url = f"sqlite:///file:test_wikimd_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), ContentStore(db_url=url)


def _patch_lifespan(user_store: UserStore, content: ContentStore):
    """Return an async context manager that replaces the real lifespan.

    The sweep_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.content = content
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    user_store: UserStore
    content: ContentStore
    ids: dict[str, int] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)
    passwords: dict[str, str] = field(default_factory=lambda: dict(PASSWORDS))

    def auth(self, role: str) -> dict[str, str]:
        """Authorization header for the seeded account with this role."""
        return {"Authorization": f"Bearer {self.tokens[role]}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext with one account per role for API integration tests.

    Accounts are named "<role>user" with the passwords in PASSWORDS. Session
    tokens are issued directly so tests do not depend on the login route.
    """
    suffix = f"{request.module.__name__.rsplit('.', 1)[-1]}_{next(_db_counter)}"
    user_store, content = make_test_stores(suffix)

    ctx = ApiContext(client=None, user_store=user_store, content=content)  # type: ignore[arg-type]
    for role, password in PASSWORDS.items():
        uid = user_store.create_user(
            User(username=f"{role}user", role=role, hashed_password=hash_password(password))
        )
        ctx.ids[role] = uid
        ctx.tokens[role] = issue_session(uid, role).value

    app.router.lifespan_context = _patch_lifespan(user_store, content)

    with TestClient(app, raise_server_exceptions=True) as client:
        ctx.client = client
        yield ctx

    user_store.close()
    content.close()


@pytest.fixture
def ctx(api: ApiContext) -> ApiContext:
    """The module's ApiContext with the cookie jar emptied.

    A session cookie left by an earlier login test would otherwise take
    precedence over the Authorization header.
    """
    api.client.cookies.clear()
    return api


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store, content = make_test_stores(f"unit_users_{next(_db_counter)}")
    yield store
    store.close()
    content.close()


@pytest.fixture
def content_store() -> Generator[ContentStore, None, None]:
    store, content = make_test_stores(f"unit_content_{next(_db_counter)}")
    yield content
    store.close()
    content.close()
