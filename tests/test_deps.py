"""
Tests for reservations/deps.py: get_current_user, scope factories, UsersClient.
These tests use the real dep functions (no overrides) to get coverage.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import httpx
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from reservations.deps import (
    CurrentUser,
    UsersClient,
    get_current_user,
    get_users_client,
    is_order_admin,
    require_any_scope,
    require_scopes,
)
from reservations.scopes import OrderScope

from .factories import CUSTOMER_ID, make_admin, make_customer


def _probe_app(dep) -> FastAPI:
    """App with one route that echoes the user resolved by `dep`."""
    app = FastAPI()

    @app.get("/probe")
    async def probe(user: CurrentUser = Depends(dep)):
        return {"id": str(user.id), "username": user.username, "scopes": user.scopes}

    return app


def _headers(**overrides) -> dict[str, str]:
    base = {
        "X-User-Id": str(CUSTOMER_ID),
        "X-Username": "customer1",
        "X-User-Scopes": "orders:read orders:write",
    }
    return {**base, **overrides}


class TestGetCurrentUser:
    def test_valid_headers_authenticate(self):
        with TestClient(_probe_app(get_current_user)) as c:
            resp = c.get("/probe", headers=_headers())
        assert resp.status_code == 200
        assert resp.json() == {
            "id": str(CUSTOMER_ID),
            "username": "customer1",
            "scopes": ["orders:read", "orders:write"],
        }

    def test_invalid_user_id_returns_401(self):
        with TestClient(_probe_app(get_current_user)) as c:
            resp = c.get("/probe", headers=_headers(**{"X-User-Id": "not-a-uuid"}))
        assert resp.status_code == 401

    def test_empty_scopes_string_parsed_as_empty_list(self):
        with TestClient(_probe_app(get_current_user)) as c:
            resp = c.get("/probe", headers=_headers(**{"X-User-Scopes": ""}))
        assert resp.json()["scopes"] == []

    def test_username_is_url_decoded(self):
        with TestClient(_probe_app(get_current_user)) as c:
            resp = c.get("/probe", headers=_headers(**{"X-Username": "li%20wei"}))
        assert resp.json()["username"] == "li wei"

    def test_missing_headers_returns_422(self):
        with TestClient(_probe_app(get_current_user)) as c:
            resp = c.get("/probe")
        assert resp.status_code == 422


class TestScopeFactories:
    def test_require_scopes_needs_all(self):
        app = _probe_app(require_scopes(OrderScope.READ, OrderScope.CANCEL))
        with TestClient(app) as c:
            denied = c.get("/probe", headers=_headers())
            allowed = c.get(
                "/probe",
                headers=_headers(**{"X-User-Scopes": "orders:read orders:cancel"}),
            )
        assert denied.status_code == 403
        assert "orders:cancel" in denied.json()["detail"]
        assert allowed.status_code == 200

    def test_require_any_scope_needs_one(self):
        app = _probe_app(require_any_scope(OrderScope.ADMIN, OrderScope.ADMIN_READ))
        with TestClient(app) as c:
            denied = c.get("/probe", headers=_headers())
            allowed = c.get(
                "/probe", headers=_headers(**{"X-User-Scopes": "admin:orders:read"})
            )
        assert denied.status_code == 403
        assert allowed.status_code == 200


class TestCurrentUser:
    def test_is_admin_true_when_has_admin_scope(self):
        user = CurrentUser(id=uuid4(), username="admin", scopes=["admin:scopes"])
        assert user.is_admin is True

    def test_is_admin_false_without_admin_scope(self):
        assert make_customer().is_admin is False

    def test_has_any(self):
        user = make_customer()
        assert user.has_any("nope", OrderScope.READ)
        assert not user.has_any("nope")

    def test_is_order_admin(self):
        assert is_order_admin(make_admin())
        assert is_order_admin(make_customer(scopes=[OrderScope.ADMIN]))
        assert is_order_admin(
            make_customer(scopes=[OrderScope.ADMIN_READ]), OrderScope.ADMIN_READ
        )
        assert not is_order_admin(make_customer(scopes=[OrderScope.ADMIN_READ]))
        assert not is_order_admin(make_customer())


class TestUsersClient:
    def test_returns_users_client_instance(self):
        assert isinstance(get_users_client(), UsersClient)

    def test_same_instance_returned_each_time(self):
        assert get_users_client() is get_users_client()

    def test_headers_built_from_current_user(self):
        user = make_customer()
        headers = UsersClient()._headers(user)
        assert headers["X-User-Id"] == str(user.id)
        assert headers["X-Username"] == user.username
        assert "orders:read" in headers["X-User-Scopes"]

    def test_client_property_returns_async_client(self):
        assert isinstance(UsersClient()._client, httpx.AsyncClient)

    async def test_get_by_ids_empty_skips_request(self):
        client = UsersClient()
        with patch.object(UsersClient, "_client", new=MagicMock()) as http:
            assert await client.get_by_ids(set(), make_customer()) == []
        http.get.assert_not_called()

    async def test_get_by_ids_returns_json(self):
        response = MagicMock(status_code=200, content=b"[]")
        response.json.return_value = [{"id": str(CUSTOMER_ID), "username": "alice"}]
        http = MagicMock()
        http.get = AsyncMock(return_value=response)

        with patch.object(UsersClient, "_client", new=http):
            users = await UsersClient().get_by_ids({CUSTOMER_ID}, make_customer())

        assert users[0]["username"] == "alice"
        assert http.get.call_args.kwargs["params"] == [("ids", str(CUSTOMER_ID))]

    async def test_get_by_ids_fails_silently(self):
        http = MagicMock()
        http.get = AsyncMock(side_effect=httpx.ConnectError("down"))

        with patch.object(UsersClient, "_client", new=http):
            assert await UsersClient().get_by_ids({CUSTOMER_ID}, make_customer()) == []

    async def test_get_by_ids_error_status_returns_empty(self):
        http = MagicMock()
        http.get = AsyncMock(return_value=MagicMock(status_code=503, content=b"x"))

        with patch.object(UsersClient, "_client", new=http):
            assert await UsersClient().get_by_ids({CUSTOMER_ID}, make_customer()) == []
