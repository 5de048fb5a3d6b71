"""KKiaPay payment gateway client.

- Endpoint: GET {base}/transactions/{transaction_id}
- Headers: x-api-key: <private key>, Content-Type/Accept: application/json
- Sandbox base: https://api-sandbox.kkiapay.me/api/v1
- Production base: https://api.kkiapay.me/api/v1

Response (extract):
{
  "transactionId": "TX-ABC",
  "amount": 500,
  "status": "SUCCESS",
  "state": "RECEIVED",
  ...
}

Transport errors and 5xx responses are retried with linear backoff
(attempt * backoff_s seconds). 4xx responses are final: the gateway does
not know the transaction, which is the caller's fault.

Webhooks are signed with HMAC-SHA-256 over the raw request body using the
shared secret; the hex digest arrives in the X-KKiaPay-Signature header.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from kivendi.logging import get_logger

logger = get_logger(__name__)

SANDBOX_BASE_URL = "https://api-sandbox.kkiapay.me/api/v1"
PRODUCTION_BASE_URL = "https://api.kkiapay.me/api/v1"
SIGNATURE_HEADER = "X-KKiaPay-Signature"

STATUS_SUCCESS = "SUCCESS"
STATE_RECEIVED = "RECEIVED"


def mask_key(key: str | None) -> str:
    """Mask a credential for logging."""
    if not key:
        return "[NOT SET]"
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


@dataclass(frozen=True)
class TransactionVerification:
    """Gateway view of one transaction."""

    transaction_id: str
    status: str
    state: str
    amount: float
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_successful(self) -> bool:
        return self.status == STATUS_SUCCESS and self.state == STATE_RECEIVED


class PaymentGatewayError(Exception):
    """Verification could not produce an answer.

    Attributes:
        message: Human-readable description
        status_code: Gateway HTTP status, None for transport failures
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        """True when the gateway rejected the transaction id itself."""
        return self.status_code is not None and 400 <= self.status_code < 500


class PaymentGateway(Protocol):
    """Payment gateway contract consumed by the boost service."""

    sandbox: bool

    def verify_transaction(self, transaction_id: str) -> TransactionVerification:
        """Look up a transaction.

        Raises:
            PaymentGatewayError: Gateway unreachable or transaction unknown.
        """
        ...


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """Constant-time check of a webhook signature. False when anything is missing."""
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


def sign_webhook_body(raw_body: bytes, secret: str) -> str:
    """Compute the signature the gateway sends for raw_body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


class KkiapayClient:
    """Synchronous KKiaPay API client.

    Services call it from threadpool workers, so it uses a sync httpx
    client that can be shared across threads.
    """

    def __init__(
        self,
        private_key: str | None,
        *,
        sandbox: bool = False,
        timeout_s: float = 10.0,
        max_retries: int = 3,
        backoff_s: float = 1.0,
        http_client: httpx.Client | None = None,
    ):
        self.private_key = private_key or ""
        self.sandbox = sandbox
        self.base_url = SANDBOX_BASE_URL if sandbox else PRODUCTION_BASE_URL
        self.max_retries = max(1, max_retries)
        self.backoff_s = backoff_s
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=httpx.Timeout(timeout_s))

        if not self.private_key:
            logger.warning("kkiapay_private_key_missing")
        logger.info(
            "kkiapay_client_initialized",
            sandbox=sandbox,
            base_url=self.base_url,
            private_key=mask_key(self.private_key),
        )

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.private_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def verify_transaction(self, transaction_id: str) -> TransactionVerification:
        """Fetch a transaction, retrying transient failures.

        Raises:
            PaymentGatewayError: All attempts failed or the gateway answered 4xx.
        """
        url = f"{self.base_url}/transactions/{transaction_id}"
        last_error: PaymentGatewayError | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return self._verify_once(url, transaction_id)
            except PaymentGatewayError as e:
                last_error = e
                logger.warning(
                    "kkiapay_verify_attempt_failed",
                    transaction_id=transaction_id,
                    attempt=attempt,
                    status_code=e.status_code,
                    error=e.message,
                )
                if e.is_client_error:
                    raise
                if attempt < self.max_retries:
                    time.sleep(attempt * self.backoff_s)

        assert last_error is not None
        raise PaymentGatewayError(
            f"Verification failed after {self.max_retries} attempts: {last_error.message}",
            status_code=last_error.status_code,
        )

    def _verify_once(self, url: str, transaction_id: str) -> TransactionVerification:
        try:
            response = self._client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"Gateway request failed: {e}") from e

        if response.status_code != 200:
            raise PaymentGatewayError(
                f"Gateway returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise PaymentGatewayError("Gateway returned invalid JSON") from e

        verification = parse_transaction(data, fallback_id=transaction_id)
        logger.info(
            "kkiapay_transaction_verified",
            transaction_id=verification.transaction_id,
            status=verification.status,
            state=verification.state,
        )
        return verification

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def parse_transaction(data: dict[str, Any], fallback_id: str) -> TransactionVerification:
    """Normalize a gateway transaction document."""
    raw_amount = data.get("amount", 0)
    try:
        amount = float(raw_amount or 0)
    except (TypeError, ValueError):
        amount = 0.0
    return TransactionVerification(
        transaction_id=str(data.get("transactionId") or fallback_id),
        status=str(data.get("status") or "").upper(),
        state=str(data.get("state") or "").upper(),
        amount=amount,
        raw=data,
    )
