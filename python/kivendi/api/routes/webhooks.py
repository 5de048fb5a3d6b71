"""Payment gateway webhook.

Public route: authenticity comes from the HMAC signature header, not from
a bearer token. The raw body is read before parsing so the signature is
checked over the exact bytes the gateway sent.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from kivendi.api.deps import get_app_settings, get_db
from kivendi.config import Settings
from kivendi.payments.kkiapay import SIGNATURE_HEADER
from kivendi.responses import success_response
from kivendi.services import payments as payments_service

router = APIRouter(tags=["webhooks"])


@router.post("/webhooks/kkiapay")
async def kkiapay_webhook(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> dict:
    """Reconcile a gateway event with the stored boost.

    Errors:
        E_INVALID_SIGNATURE (401), E_INVALID_REQUEST (400)
    """
    raw_body = await request.body()
    result = await run_in_threadpool(
        payments_service.handle_webhook,
        db,
        raw_body,
        request.headers.get(SIGNATURE_HEADER),
        settings.kkiapay_secret,
    )
    return success_response(result.model_dump(mode="json"))
