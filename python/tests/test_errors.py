"""Tests for error handling and response envelopes.

Tests cover:
- Success and error envelope shapes
- Every ApiErrorCode maps to an HTTP status
- ApiError subclasses and their defaults
- Malformed JSON and schema validation both yield 400 E_INVALID_REQUEST
- Unhandled exceptions become 500 E_INTERNAL without leaking details
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from kivendi.errors import (
    ERROR_CODE_TO_STATUS,
    ApiError,
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from kivendi.responses import error_response, success_response, unhandled_exception_handler
from tests.factories import create_user
from tests.helpers import auth_headers


class TestEnvelopes:
    """Tests for success_response and error_response."""

    def test_error_shape(self):
        body = error_response(ApiErrorCode.E_BLOCKED, "Blocked", request_id="req-1")

        assert body == {
            "error": {"code": "E_BLOCKED", "message": "Blocked", "request_id": "req-1"}
        }

    def test_error_without_request_context(self):
        body = error_response(ApiErrorCode.E_INTERNAL, "boom")

        assert "request_id" not in body["error"]

    @pytest.mark.parametrize("payload", [{"id": 1}, [1, 2], None])
    def test_success_wraps_anything(self, payload):
        assert success_response(payload) == {"data": payload}


class TestErrorCodeToStatus:
    """Tests for the code -> HTTP status table."""

    def test_every_code_mapped(self):
        assert set(ERROR_CODE_TO_STATUS) == set(ApiErrorCode)

    @pytest.mark.parametrize(
        "code,expected_status",
        [
            (ApiErrorCode.E_UNAUTHENTICATED, 401),
            (ApiErrorCode.E_INVALID_SIGNATURE, 401),
            (ApiErrorCode.E_STAFF_DISABLED, 403),
            (ApiErrorCode.E_BLOCKED, 403),
            (ApiErrorCode.E_CONVERSATION_NOT_FOUND, 404),
            (ApiErrorCode.E_SELF_CHAT, 400),
            (ApiErrorCode.E_PAYMENT_NOT_SUCCESSFUL, 402),
            (ApiErrorCode.E_DUPLICATE_TRANSACTION, 409),
            (ApiErrorCode.E_OFFER_IN_USE, 409),
            (ApiErrorCode.E_STORAGE_ERROR, 500),
            (ApiErrorCode.E_PAYMENT_GATEWAY_UNAVAILABLE, 502),
        ],
    )
    def test_status(self, code: ApiErrorCode, expected_status: int):
        assert ApiError(code, "x").status_code == expected_status


class TestApiErrorClasses:
    """Tests for ApiError subclasses."""

    def test_defaults(self):
        assert NotFoundError().code == ApiErrorCode.E_NOT_FOUND
        assert ForbiddenError().status_code == 403
        assert InvalidRequestError().message == "Invalid request"

    def test_conflict_requires_code(self):
        error = ConflictError(ApiErrorCode.E_ALREADY_BOOSTED)

        assert error.status_code == 409
        assert str(error) == "Conflict"


class TestRequestValidation:
    """Malformed and invalid bodies on real routes."""

    def test_malformed_json(self, client, db_session):
        user = create_user(db_session)

        response = client.post(
            "/api/v1/device-tokens",
            content="{invalid json",
            headers={**auth_headers(user.id), "content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"
        assert response.json()["error"]["message"] == "Malformed JSON body"

    def test_schema_violation_names_field(self, client, db_session):
        user = create_user(db_session)

        response = client.post(
            "/api/v1/device-tokens", json={"token": "abc"}, headers=auth_headers(user.id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid request: device_type"

    def test_unknown_route(self, client, db_session):
        user = create_user(db_session)

        response = client.get("/api/v1/nowhere", headers=auth_headers(user.id))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_NOT_FOUND"


class TestUnhandledExceptionHandling:
    """Tests for unhandled exception handling."""

    @pytest.fixture
    def crash_client(self):
        test_app = FastAPI()

        @test_app.get("/crash")
        def crash_endpoint():
            raise RuntimeError("SECRET_INTERNAL_DETAIL")

        test_app.add_exception_handler(Exception, unhandled_exception_handler)
        return TestClient(test_app, raise_server_exceptions=False)

    def test_returns_500_with_e_internal(self, crash_client):
        response = crash_client.get("/crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "E_INTERNAL"

    def test_does_not_leak_details(self, crash_client):
        response = crash_client.get("/crash")

        assert "SECRET_INTERNAL_DETAIL" not in response.text
