"""Test helpers for authentication and common test operations.

Provides:
- Token minting for user and staff identities
- Header generation for test requests
- Signed webhook bodies
"""

import base64
import json
from typing import Any

from kivendi.auth.verifier import mint_token
from kivendi.payments.kkiapay import SIGNATURE_HEADER, sign_webhook_body

TEST_JWT_SECRET = "test-jwt-secret"
TEST_WEBHOOK_SECRET = "test-webhook-secret"


def user_token(user_id: int, expires_in: int = 3600) -> str:
    return mint_token(TEST_JWT_SECRET, user_id, expires_in=expires_in)


def staff_token(admin_id: int, role: str = "admin", expires_in: int = 3600) -> str:
    return mint_token(TEST_JWT_SECRET, admin_id, expires_in=expires_in, role=role)


def auth_headers(user_id: int) -> dict[str, str]:
    """Authorization header for an end-user."""
    return {"Authorization": f"Bearer {user_token(user_id)}"}


def staff_headers(admin_id: int, role: str = "admin") -> dict[str, str]:
    """Authorization header for a staff member."""
    return {"Authorization": f"Bearer {staff_token(admin_id, role)}"}


def signed_webhook(payload: dict[str, Any], secret: str = TEST_WEBHOOK_SECRET):
    """Return (body, headers) for a webhook signed the way the gateway signs it."""
    body = json.dumps(payload).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: sign_webhook_body(body, secret),
    }
    return body, headers


def data(response) -> Any:
    """Unwrap the success envelope, failing loudly on an error envelope."""
    body = response.json()
    assert "data" in body, body
    return body["data"]


def error_code(response) -> str:
    return response.json()["error"]["code"]


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32


def png_base64() -> str:
    return base64.b64encode(PNG_BYTES).decode("ascii")
