"""In-process fakes for outbound collaborators.

- FakeGateway: scripted transaction verifications
- RecordingPushTransport: records every push, can fail chosen tokens
- FakeSocket: records frames sent through the chat hub, optionally slow or failing
"""

import asyncio

from kivendi.payments.kkiapay import PaymentGatewayError, TransactionVerification
from kivendi.push.transport import PushDeliveryError, PushMessage


class FakeGateway:
    """Payment gateway answering from a dict of transaction id -> outcome."""

    def __init__(self, sandbox: bool = False):
        self.sandbox = sandbox
        self.outcomes: dict[str, TransactionVerification | PaymentGatewayError] = {}
        self.calls: list[str] = []

    def succeed(self, transaction_id: str, amount: float) -> None:
        self.outcomes[transaction_id] = TransactionVerification(
            transaction_id=transaction_id,
            status="SUCCESS",
            state="RECEIVED",
            amount=amount,
            raw={"transactionId": transaction_id, "status": "SUCCESS", "amount": amount},
        )

    def answer(self, transaction_id: str, status: str, state: str, amount: float) -> None:
        self.outcomes[transaction_id] = TransactionVerification(
            transaction_id=transaction_id, status=status, state=state, amount=amount
        )

    def fail(self, transaction_id: str, status_code: int | None = None) -> None:
        self.outcomes[transaction_id] = PaymentGatewayError(
            "scripted failure", status_code=status_code
        )

    def verify_transaction(self, transaction_id: str) -> TransactionVerification:
        self.calls.append(transaction_id)
        outcome = self.outcomes.get(transaction_id)
        if outcome is None:
            raise PaymentGatewayError("unknown transaction", status_code=404)
        if isinstance(outcome, PaymentGatewayError):
            raise outcome
        return outcome


class RecordingPushTransport:
    """Push transport that records deliveries instead of sending them."""

    def __init__(self):
        self.sent: list[tuple[str, PushMessage]] = []
        self.invalid_tokens: set[str] = set()
        self.failing_tokens: set[str] = set()

    def send(self, token: str, message: PushMessage) -> None:
        if token in self.invalid_tokens:
            raise PushDeliveryError("unregistered", invalid_token=True)
        if token in self.failing_tokens:
            raise PushDeliveryError("unavailable")
        self.sent.append((token, message))

    def tokens_sent(self) -> list[str]:
        return [token for token, _ in self.sent]


class FakeSocket:
    """WebSocket stand-in for hub tests."""

    def __init__(self, fail_sends: bool = False, send_delay_s: float = 0.0):
        self.frames: list[dict] = []
        self.close_code: int | None = None
        self.fail_sends = fail_sends
        self.send_delay_s = send_delay_s

    async def send_json(self, data, mode: str = "text") -> None:
        if self.send_delay_s:
            await asyncio.sleep(self.send_delay_s)
        if self.fail_sends:
            raise RuntimeError("socket is gone")
        self.frames.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code

    async def wait_for_frames(self, count: int, timeout_s: float = 1.0) -> list[dict]:
        """Frames received once at least `count` have arrived through a writer task."""
        async with asyncio.timeout(timeout_s):
            while len(self.frames) < count:
                await asyncio.sleep(0.005)
        return self.frames

    async def wait_closed(self, timeout_s: float = 1.0) -> int:
        async with asyncio.timeout(timeout_s):
            while self.close_code is None:
                await asyncio.sleep(0.005)
        return self.close_code
