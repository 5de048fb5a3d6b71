"""Payment gateway integration (KKiaPay)."""

from kivendi.payments.kkiapay import (
    SIGNATURE_HEADER,
    KkiapayClient,
    PaymentGateway,
    PaymentGatewayError,
    TransactionVerification,
    verify_webhook_signature,
)

__all__ = [
    "SIGNATURE_HEADER",
    "KkiapayClient",
    "PaymentGateway",
    "PaymentGatewayError",
    "TransactionVerification",
    "verify_webhook_signature",
]
