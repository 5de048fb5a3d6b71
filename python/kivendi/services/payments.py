"""Payment gateway webhook reconciliation.

The gateway signs the raw body with HMAC-SHA256 using the shared secret.
Every authentic webhook upserts the PaymentRecord for its transaction and
then applies at most one boost transition:

    PAYMENT_SUCCEEDED: any     -> completed (payment status only)
    PAYMENT_FAILED:    any     -> failed, inactive
    REFUND:            any     -> refunded, inactive

Transitions that would not change anything are skipped, so replays are
harmless. Deactivations recompute the ad's is_boosted flag under the ad
row lock, leaving it set while another boost is still active.
"""

import json

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from kivendi.db.models import Ad, AdBoost, PaymentRecord, PaymentStatus, utcnow
from kivendi.db.session import transaction
from kivendi.db.upsert import conflict_insert
from kivendi.errors import ApiError, ApiErrorCode, InvalidRequestError
from kivendi.logging import get_logger
from kivendi.payments.kkiapay import verify_webhook_signature
from kivendi.schemas.boost import KkiapayWebhookPayload, WebhookAckOut
from kivendi.services.boosts import refresh_ad_boost_flag

logger = get_logger(__name__)

PAYMENT_SUCCEEDED = "PAYMENT_SUCCEEDED"
PAYMENT_FAILED = "PAYMENT_FAILED"
REFUND = "REFUND"


def parse_webhook(raw_body: bytes) -> tuple[KkiapayWebhookPayload, dict]:
    try:
        payload = KkiapayWebhookPayload.model_validate_json(raw_body)
    except ValidationError as e:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Invalid webhook payload") from e
    return payload, json.loads(raw_body)


def _upsert_payment_record(db: Session, payload: KkiapayWebhookPayload, raw: dict) -> None:
    now = utcnow()
    stmt = conflict_insert(db, PaymentRecord).values(
        transaction_id=payload.transaction_id,
        amount=payload.amount,
        status=payload.status,
        state=payload.state,
        raw_response=raw,
        verified_at=now,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[PaymentRecord.transaction_id],
        set_={
            "status": payload.status,
            "state": payload.state,
            "raw_response": raw,
            "updated_at": now,
        },
    )
    db.execute(stmt)


def _deactivate(db: Session, boost: AdBoost, payment_status: str) -> bool:
    """Set a terminal payment status and end the boost. Returns False on replay."""
    if boost.payment_status == payment_status and not boost.is_active:
        return False
    ad = db.scalars(
        select(Ad)
        .where(Ad.id == boost.ad_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    boost.payment_status = payment_status
    boost.is_active = False
    db.flush()
    if ad is not None:
        refresh_ad_boost_flag(db, ad)
    return True


def handle_webhook(
    db: Session, raw_body: bytes, signature: str | None, secret: str | None
) -> WebhookAckOut:
    """Authenticate and apply one gateway webhook.

    Raises:
        ApiError(E_INVALID_SIGNATURE): Missing or wrong signature (401).
        InvalidRequestError: Body is not a webhook payload.
    """
    if not verify_webhook_signature(raw_body, signature, secret):
        logger.warning("kkiapay_webhook_invalid_signature")
        raise ApiError(ApiErrorCode.E_INVALID_SIGNATURE, "Invalid webhook signature")

    payload, raw = parse_webhook(raw_body)
    log = logger.bind(transaction_id=payload.transaction_id, webhook_type=payload.type)

    changed = False
    with transaction(db):
        _upsert_payment_record(db, payload, raw)
        boost = db.scalars(
            select(AdBoost).where(AdBoost.transaction_id == payload.transaction_id)
        ).first()

        if boost is None:
            log.info("kkiapay_webhook_no_boost")
        elif payload.type == PAYMENT_SUCCEEDED:
            if boost.payment_status != PaymentStatus.completed.value:
                boost.payment_status = PaymentStatus.completed.value
                changed = True
        elif payload.type == PAYMENT_FAILED:
            changed = _deactivate(db, boost, PaymentStatus.failed.value)
        elif payload.type == REFUND:
            changed = _deactivate(db, boost, PaymentStatus.refunded.value)
        else:
            log.info("kkiapay_webhook_unhandled_type")

    log.info("kkiapay_webhook_processed", changed=changed, reason=payload.reason)
    return WebhookAckOut()
