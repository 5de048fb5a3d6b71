"""Boost API routes.

Public catalogue and boosted-ads listing, plus the authenticated purchase
endpoint. A purchase is settled against the payment gateway before any
row is written; see kivendi.services.boosts.purchase_boost.
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from kivendi.api.deps import (
    get_app_settings,
    get_db,
    get_payment_gateway,
    get_push_transport,
    get_schedule,
)
from kivendi.auth.middleware import Viewer, get_viewer
from kivendi.background import Schedule
from kivendi.config import Settings
from kivendi.errors import ApiError
from kivendi.payments.kkiapay import PaymentGateway
from kivendi.push.transport import PushTransport
from kivendi.responses import api_error_json, success_response
from kivendi.schemas.boost import BoostPurchaseRequest
from kivendi.services import boosts as boosts_service

router = APIRouter(tags=["boosts"])


# =============================================================================
# Catalogue (public)
# =============================================================================


@router.get("/boost-offers")
def list_offers(db: Annotated[Session, Depends(get_db)]) -> dict:
    """Active offers in display order."""
    offers = boosts_service.list_offers(db)
    return success_response([o.model_dump(mode="json") for o in offers])


@router.get("/boost-offers/{offer_id}")
def get_offer(offer_id: int, db: Annotated[Session, Depends(get_db)]) -> dict:
    """One active offer.

    Errors:
        E_OFFER_NOT_FOUND (404): Unknown or inactive offer.
    """
    offer = boosts_service.get_offer(db, offer_id)
    return success_response(offer.model_dump(mode="json"))


@router.get("/boosted-ads")
def list_boosted_ads(
    db: Annotated[Session, Depends(get_db)],
    page: int = Query(default=1, ge=1),
    limit: int = Query(
        default=boosts_service.DEFAULT_BOOSTED_ADS_LIMIT,
        ge=1,
        le=boosts_service.MAX_BOOSTED_ADS_LIMIT,
    ),
) -> dict:
    """Validated ads with a live boost, highest priority first."""
    result = boosts_service.list_boosted_ads(db, page=page, limit=limit)
    return success_response(result.model_dump(mode="json"))


@router.get("/ads/{ad_id}/boost-status")
def get_boost_status(ad_id: int, db: Annotated[Session, Depends(get_db)]) -> dict:
    result = boosts_service.check_ad_boost(db, ad_id)
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Purchase
# =============================================================================


@router.post("/ads/{ad_id}/boost", status_code=201, response_model=None)
def purchase_boost(
    ad_id: int,
    body: BoostPurchaseRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
    transport: Annotated[PushTransport, Depends(get_push_transport)],
    schedule: Annotated[Schedule, Depends(get_schedule)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    background_tasks: BackgroundTasks,
) -> dict | JSONResponse:
    """Verify a gateway transaction and activate a boost on the viewer's ad.

    Errors:
        E_AD_NOT_FOUND / E_OFFER_NOT_FOUND (404), E_NOT_AD_OWNER (403),
        E_AD_NOT_VALIDATED (400), E_DUPLICATE_TRANSACTION / E_ALREADY_BOOSTED (409),
        E_PAYMENT_VERIFICATION_FAILED / E_AMOUNT_MISMATCH (400),
        E_PAYMENT_NOT_SUCCESSFUL (402), E_PAYMENT_GATEWAY_UNAVAILABLE (502)
    """
    try:
        result = boosts_service.purchase_boost(
            db,
            gateway=gateway,
            transport=transport,
            schedule=schedule,
            settings=settings,
            user_id=viewer.user_id,
            ad_id=ad_id,
            request=body,
        )
    except ApiError as e:
        # Failure notifications were queued before the error; keep their pushes.
        return api_error_json(e, background=background_tasks)
    return success_response(result.model_dump(mode="json"))
