"""
tests/conftest.py -- Shared test fixtures for CarListings integration tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory stores for users + cars
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a pre-created user and its bearer token
  - other_user: a second account for ownership tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any app import: DEBUG lets get_settings()
auto-generate SECRET_KEY, RATE_LIMIT_ENABLED=false keeps repeated logins from
tripping slowapi, MEDIA_DIR points local image storage at a temp directory.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("MEDIA_DIR", tempfile.mkdtemp(prefix="carlistings-media-"))

import pytest
from fastapi.testclient import TestClient

from api.main import app, configure_state
from auth.models import User
from auth.store import UserStore
from auth.tokens import hash_password
from cars.media import LocalMediaStore
from cars.store import CarStore
from core.config import get_settings

TEST_USERNAME = "testuser"
TEST_PASSWORD = "testpass123"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, CarStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    db_url = f"sqlite:///file:test_carlistings_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url), CarStore(db_url)


def _patch_lifespan(user_store: UserStore, car_store: CarStore):
    """Return an async context manager that replaces the real lifespan.

    Uses the same configure_state() as production so the token service is
    built from the same settings, but with test stores and a temp media dir.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        configure_state(
            app,
            settings,
            user_store=user_store,
            car_store=car_store,
            media=LocalMediaStore(settings.media_dir, settings.media_url_prefix),
        )
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores. The token is
    issued by the app's own TokenService once the lifespan has run.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, car_store = _make_test_stores(suffix)

    uid = user_store.create_user(User(username=TEST_USERNAME, hashed_password=hash_password(TEST_PASSWORD)))

    app.router.lifespan_context = _patch_lifespan(user_store, car_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        token = app.state.token_service.issue(user_store.get_by_id(uid))
        yield client, token, uid

    user_store.close()
    car_store.close()


@pytest.fixture(scope="module")
def other_user(api_client) -> tuple[str, int]:
    """Return (token, user_id) for a second account that owns nothing yet."""
    user_store: UserStore = app.state.user_store
    uid = user_store.create_user(User(username="otheruser", hashed_password=hash_password("otherpass123")))
    token = app.state.token_service.issue(user_store.get_by_id(uid))
    return token, uid
