"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files; pytest discovers this by convention.
"""

from __future__ import annotations

from fnmatch import fnmatch
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise, connections

from reservations.deps import (
    can_admin_delete_order,
    can_audit_orders,
    can_cancel_order,
    can_moderate_orders,
    can_read_order,
    can_read_venues,
    can_write_order,
    can_write_venues,
    get_current_user,
    get_users_client,
)
from reservations.main import TORTOISE_MODULES, include_routers, register_exception_handlers
from reservations.scheduler import BookingScheduler

from .factories import NOW, make_admin, make_customer

# ---------------------------------------------------------------------------
# Redis and users-ms stand-ins, preventing real network calls in tests
# ---------------------------------------------------------------------------


class FakeRedis:
    """In-memory subset of redis.asyncio.Redis used by reservations.cache."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch(key, match):
                yield key


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr("reservations.cache.get_redis", lambda: fake)
    return fake


def _noop_users_client():
    mock = MagicMock()
    mock.get_by_ids = AsyncMock(return_value=[])
    return mock


# ---------------------------------------------------------------------------
# Database: in-memory SQLite per test
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture()
async def db():
    await Tortoise.init(db_url="sqlite://:memory:", modules=TORTOISE_MODULES, use_tz=True)
    await Tortoise.generate_schemas()
    yield
    await connections.close_all()


@pytest.fixture()
def scheduler(db) -> BookingScheduler:
    """Scheduler with a frozen clock and UTC venue hours."""
    return BookingScheduler(clock=lambda: NOW, venue_tz="UTC")


# ---------------------------------------------------------------------------
# App builder used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(current_user, users_client=None) -> FastAPI:
    """
    Fresh FastAPI app with auth/scope dependencies overridden to return
    `current_user` unconditionally.

    Pass `users_client` to inject a custom mock; defaults to a no-op mock.
    """
    app = FastAPI()
    register_exception_handlers(app)
    include_routers(app)

    async def _user():
        return current_user

    for dep in (
        can_read_venues,
        can_write_venues,
        can_read_order,
        can_write_order,
        can_cancel_order,
        can_audit_orders,
        can_moderate_orders,
        can_admin_delete_order,
        get_current_user,
    ):
        app.dependency_overrides[dep] = _user

    uc = users_client if users_client is not None else _noop_users_client()
    app.dependency_overrides[get_users_client] = lambda: uc

    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer_client():
    return TestClient(build_app(make_customer()), raise_server_exceptions=True)


@pytest.fixture()
def admin_client():
    return TestClient(build_app(make_admin()), raise_server_exceptions=True)


@pytest.fixture()
def anon_app():
    """
    Bare app with NO dependency overrides.
    Use this when you want real scope/auth deps to run so you can assert 401/403/422.
    """
    app = FastAPI()
    register_exception_handlers(app)
    include_routers(app)
    return app


@pytest.fixture()
def client_factory():
    def _make(current_user, users_client=None) -> TestClient:
        return TestClient(
            build_app(current_user, users_client=users_client),
            raise_server_exceptions=True,
        )

    return _make
