"""Application wiring: error translation, routes and app factory."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from loguru import logger

from reservations.errors import (
    ConflictError,
    NotFoundError,
    ReservationError,
    ValidationError,
)
from reservations.main import create_app, register_exception_handlers


def _raising_app(exc: Exception) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise exc

    return app


class TestErrorTranslation:
    @pytest.mark.parametrize(
        "exc,status_code,code",
        [
            (ValidationError("Invalid booking duration"), 422, "VALIDATION_FAILED"),
            (NotFoundError("订单不存在"), 404, "NOT_FOUND"),
            (ConflictError("Time slot already booked"), 409, "CONFLICT"),
        ],
    )
    def test_status_and_body(self, exc, status_code, code):
        with TestClient(_raising_app(exc)) as c:
            resp = c.get("/boom")
        assert resp.status_code == status_code
        assert resp.json() == {"detail": exc.message, "code": code}

    def test_rejection_is_logged(self):
        messages = []
        sink = logger.add(messages.append, level="WARNING")
        try:
            with TestClient(_raising_app(ConflictError("Time slot already booked"))) as c:
                c.get("/boom")
        finally:
            logger.remove(sink)
        assert any("409" in m and "Time slot already booked" in m for m in messages)

    def test_error_str_carries_code(self):
        assert str(NotFoundError("Venue not found")) == "NOT_FOUND: Venue not found"
        assert isinstance(ConflictError("x"), ReservationError)


class TestCreateApp:
    def test_all_routers_mounted(self):
        paths = {route.path for route in create_app().routes}
        for path in (
            "/orders/",
            "/orders/slots",
            "/orders/{order_id}",
            "/orders/{order_id}/finish",
            "/admin/orders/pending",
            "/admin/orders/audited",
            "/admin/orders/range",
            "/admin/orders/{order_id}/approve",
            "/admin/orders/{order_id}/reject",
            "/admin/orders/{order_id}",
            "/venues/",
            "/venues/check-name",
            "/venues/by-name/{name}",
            "/venues/{venue_id}",
            "/admin/venues/",
            "/admin/venues/{venue_id}",
        ):
            assert path in paths

    def test_description_lists_scopes(self):
        app = create_app()
        assert "`orders:write`" in app.description
        assert "`admin:venues:write`" in app.description
