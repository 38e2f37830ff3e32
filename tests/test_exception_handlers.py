"""Tests for global exception handlers.

Validates consistent status codes, error format and absence of
information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.adapters.rate_limit.base import RateLimitPolicy
from app.core.errors import AppError, ValidationAppError
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


class TestAppErrorHandler:
    def test_validation_error_returns_400_with_details(self, client, app_with_handlers):
        @app_with_handlers.get("/test-validation")
        async def endpoint():
            raise ValidationAppError(
                code="invalid_page",
                message="page must be >= 1",
                details={"field": "page", "actual_value": 0},
            )

        response = client.get("/test-validation")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_page"
        assert error["details"] == {"field": "page", "actual_value": 0}
        assert "request_id" in error

    def test_invalid_policy_surfaces_as_validation_error(self, client, app_with_handlers):
        @app_with_handlers.get("/test-policy")
        async def endpoint():
            RateLimitPolicy(name="broken", window_ms=0, max_requests=1)

        response = client.get("/test-policy")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_rate_limit_policy"
        assert error["details"]["policy"] == "broken"

    def test_base_app_error_returns_500(self, client, app_with_handlers):
        @app_with_handlers.get("/test-app-error")
        async def endpoint():
            raise AppError(code="storage_unavailable", message="Storage unavailable")

        response = client.get("/test-app-error")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "storage_unavailable"
        assert "details" not in response.json()["error"]


class TestGeneralExceptionHandler:
    def test_unexpected_exception_returns_generic_500(self, client, app_with_handlers):
        @app_with_handlers.get("/boom")
        async def endpoint():
            raise RuntimeError("database connection failed")

        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_server_error"
        assert "database connection" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("secret detail")))

        body = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert "Traceback" not in json.dumps(body)
        assert "secret detail" not in json.dumps(body)
        assert "ValueError" not in json.dumps(body)


def test_setup_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
