"""Tests for the KKiaPay gateway client.

Tests cover:
- Sandbox and production base URLs, API key header
- Response normalization (uppercased status/state, numeric amount)
- Retry on transport errors and 5xx, no retry on 4xx
- Webhook signature helpers
"""

import httpx
import pytest
import respx
from httpx import Response

from kivendi.payments.kkiapay import (
    PRODUCTION_BASE_URL,
    SANDBOX_BASE_URL,
    KkiapayClient,
    PaymentGatewayError,
    mask_key,
    parse_transaction,
    sign_webhook_body,
    verify_webhook_signature,
)


@pytest.fixture
def sandbox_client():
    client = KkiapayClient("pk_test_0123456789", sandbox=True, max_retries=3, backoff_s=0)
    yield client
    client.close()


def tx_url(base: str, tx: str) -> str:
    return f"{base}/transactions/{tx}"


class TestVerifyTransaction:
    """Integration tests for verify_transaction using respx to mock HTTP."""

    @respx.mock
    def test_success(self, sandbox_client):
        route = respx.get(tx_url(SANDBOX_BASE_URL, "TX-1")).mock(
            return_value=Response(
                200,
                json={
                    "transactionId": "TX-1",
                    "amount": "5000",
                    "status": "success",
                    "state": "received",
                },
            )
        )

        result = sandbox_client.verify_transaction("TX-1")

        assert result.transaction_id == "TX-1"
        assert result.amount == 5000.0
        assert result.is_successful is True
        assert route.calls.last.request.headers["x-api-key"] == "pk_test_0123456789"

    @respx.mock
    def test_production_base_url(self):
        respx.get(tx_url(PRODUCTION_BASE_URL, "TX-2")).mock(
            return_value=Response(200, json={"status": "FAILED", "state": "RECEIVED"})
        )
        client = KkiapayClient("pk_live_key", sandbox=False, backoff_s=0)

        result = client.verify_transaction("TX-2")

        assert result.transaction_id == "TX-2"
        assert result.is_successful is False
        client.close()

    @respx.mock
    def test_retries_server_errors(self, sandbox_client):
        route = respx.get(tx_url(SANDBOX_BASE_URL, "TX-3")).mock(
            side_effect=[
                Response(503),
                httpx.ConnectError("connection refused"),
                Response(
                    200, json={"transactionId": "TX-3", "status": "SUCCESS", "state": "RECEIVED"}
                ),
            ]
        )

        result = sandbox_client.verify_transaction("TX-3")

        assert result.is_successful is True
        assert route.call_count == 3

    @respx.mock
    def test_gives_up_after_max_retries(self, sandbox_client):
        route = respx.get(tx_url(SANDBOX_BASE_URL, "TX-4")).mock(return_value=Response(500))

        with pytest.raises(PaymentGatewayError) as exc_info:
            sandbox_client.verify_transaction("TX-4")

        assert route.call_count == 3
        assert exc_info.value.status_code == 500
        assert exc_info.value.is_client_error is False
        assert "after 3 attempts" in exc_info.value.message

    @respx.mock
    def test_client_error_is_final(self, sandbox_client):
        route = respx.get(tx_url(SANDBOX_BASE_URL, "TX-5")).mock(return_value=Response(404))

        with pytest.raises(PaymentGatewayError) as exc_info:
            sandbox_client.verify_transaction("TX-5")

        assert route.call_count == 1
        assert exc_info.value.is_client_error is True

    @respx.mock
    def test_invalid_json(self, sandbox_client):
        respx.get(tx_url(SANDBOX_BASE_URL, "TX-6")).mock(
            return_value=Response(200, content=b"<html>oops</html>")
        )

        with pytest.raises(PaymentGatewayError) as exc_info:
            sandbox_client.verify_transaction("TX-6")

        assert exc_info.value.status_code is None


class TestParseTransaction:
    def test_missing_fields(self):
        result = parse_transaction({}, fallback_id="TX-9")

        assert result.transaction_id == "TX-9"
        assert result.status == ""
        assert result.amount == 0.0

    def test_unparseable_amount(self):
        assert parse_transaction({"amount": "beaucoup"}, fallback_id="TX").amount == 0.0


class TestSignatures:
    """Tests for webhook HMAC helpers."""

    def test_round_trip(self):
        body = b'{"type":"REFUND","transactionId":"TX-1"}'
        signature = sign_webhook_body(body, "shh")

        assert verify_webhook_signature(body, signature, "shh") is True
        assert verify_webhook_signature(body, signature.upper(), "shh") is True

    def test_tampered_body(self):
        signature = sign_webhook_body(b"original", "shh")

        assert verify_webhook_signature(b"tampered", signature, "shh") is False

    @pytest.mark.parametrize("signature,secret", [(None, "shh"), ("abc", None), ("", "shh")])
    def test_missing_inputs(self, signature, secret):
        assert verify_webhook_signature(b"body", signature, secret) is False


class TestMaskKey:
    @pytest.mark.parametrize(
        "key,expected",
        [(None, "[NOT SET]"), ("short", "****"), ("pk_live_abcdef123456", "pk_l...3456")],
    )
    def test_mask(self, key, expected):
        assert mask_key(key) == expected
