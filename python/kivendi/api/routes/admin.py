"""Back-office routes under /admin.

Every handler declares the capability it needs with require_capability;
AuthMiddleware has already refused non-staff and disabled staff tokens
before a handler runs.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from kivendi.api.deps import get_db, get_object_store, get_push_transport, get_schedule
from kivendi.auth.capabilities import Capability, require_capability
from kivendi.auth.middleware import StaffViewer
from kivendi.background import Schedule
from kivendi.push.transport import PushTransport
from kivendi.responses import success_response
from kivendi.schemas.boost import (
    BoostGrantRequest,
    BoostOfferCreateRequest,
    BoostOfferUpdateRequest,
)
from kivendi.schemas.conversation import ReportUpdateRequest
from kivendi.schemas.moderation import RejectAdRequest
from kivendi.services import boost_offers as boost_offers_service
from kivendi.services import boosts as boosts_service
from kivendi.services import moderation as moderation_service
from kivendi.services import reports as reports_service
from kivendi.services import staff as staff_service
from kivendi.storage.client import ObjectStoreBase

router = APIRouter(prefix="/admin", tags=["admin"])

Moderator = Annotated[StaffViewer, Depends(require_capability(Capability.MODERATE_ADS))]
BoostManager = Annotated[StaffViewer, Depends(require_capability(Capability.MANAGE_BOOSTS))]
ReportManager = Annotated[StaffViewer, Depends(require_capability(Capability.MANAGE_REPORTS))]
StaffReader = Annotated[StaffViewer, Depends(require_capability(Capability.VIEW_STAFF))]


# =============================================================================
# Ad moderation
# =============================================================================


@router.post("/ads/{ad_id}/validate")
def validate_ad(
    ad_id: int,
    staff: Moderator,
    db: Annotated[Session, Depends(get_db)],
    transport: Annotated[PushTransport, Depends(get_push_transport)],
    schedule: Annotated[Schedule, Depends(get_schedule)],
) -> dict:
    result = moderation_service.validate_ad(db, schedule, transport, ad_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/ads/{ad_id}/reject")
def reject_ad(
    ad_id: int,
    staff: Moderator,
    db: Annotated[Session, Depends(get_db)],
    transport: Annotated[PushTransport, Depends(get_push_transport)],
    schedule: Annotated[Schedule, Depends(get_schedule)],
    body: RejectAdRequest | None = None,
) -> dict:
    """Reject an ad. The reason only travels in the owner's notification."""
    result = moderation_service.reject_ad(
        db, schedule, transport, ad_id, body or RejectAdRequest()
    )
    return success_response(result.model_dump(mode="json"))


@router.post("/ads/{ad_id}/deactivate")
def deactivate_ad(
    ad_id: int,
    staff: Moderator,
    db: Annotated[Session, Depends(get_db)],
    transport: Annotated[PushTransport, Depends(get_push_transport)],
    schedule: Annotated[Schedule, Depends(get_schedule)],
) -> dict:
    result = moderation_service.deactivate_ad(db, schedule, transport, ad_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/ads/{ad_id}")
def delete_ad(
    ad_id: int,
    staff: Moderator,
    db: Annotated[Session, Depends(get_db)],
    transport: Annotated[PushTransport, Depends(get_push_transport)],
    schedule: Annotated[Schedule, Depends(get_schedule)],
    store: Annotated[ObjectStoreBase, Depends(get_object_store)],
) -> dict:
    """Delete an ad with its conversations, messages and boosts.

    Image cleanup runs after the response.
    """
    result = moderation_service.delete_ad(db, schedule, transport, store, ad_id)
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Boosts
# =============================================================================


@router.post("/boosts", status_code=201)
def grant_boost(
    body: BoostGrantRequest,
    staff: BoostManager,
    db: Annotated[Session, Depends(get_db)],
    transport: Annotated[PushTransport, Depends(get_push_transport)],
    schedule: Annotated[Schedule, Depends(get_schedule)],
) -> dict:
    """Activate a boost without payment.

    Errors:
        E_AD_NOT_FOUND / E_OFFER_NOT_FOUND (404), E_AD_NOT_VALIDATED (400),
        E_ALREADY_BOOSTED (409)
    """
    result = boosts_service.grant_boost(
        db, transport=transport, schedule=schedule, admin_id=staff.admin_id, request=body
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/boosts")
def list_active_boosts(staff: BoostManager, db: Annotated[Session, Depends(get_db)]) -> dict:
    boosts = boosts_service.list_active_boosts(db)
    return success_response([b.model_dump(mode="json") for b in boosts])


@router.post("/boosts/{boost_id}/deactivate")
def deactivate_boost(
    boost_id: int, staff: BoostManager, db: Annotated[Session, Depends(get_db)]
) -> dict:
    result = boosts_service.deactivate_boost(db, boost_id)
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Boost offers
# =============================================================================


@router.get("/boost-offers")
def list_all_offers(staff: BoostManager, db: Annotated[Session, Depends(get_db)]) -> dict:
    """Every offer, including inactive ones."""
    offers = boost_offers_service.list_all_offers(db)
    return success_response([o.model_dump(mode="json") for o in offers])


@router.post("/boost-offers", status_code=201)
def create_offer(
    body: BoostOfferCreateRequest, staff: BoostManager, db: Annotated[Session, Depends(get_db)]
) -> dict:
    result = boost_offers_service.create_offer(db, body)
    return success_response(result.model_dump(mode="json"))


@router.put("/boost-offers/{offer_id}")
def update_offer(
    offer_id: int,
    body: BoostOfferUpdateRequest,
    staff: BoostManager,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = boost_offers_service.update_offer(db, offer_id, body)
    return success_response(result.model_dump(mode="json"))


@router.post("/boost-offers/{offer_id}/toggle")
def toggle_offer(
    offer_id: int, staff: BoostManager, db: Annotated[Session, Depends(get_db)]
) -> dict:
    result = boost_offers_service.toggle_offer(db, offer_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/boost-offers/{offer_id}", status_code=204)
def delete_offer(
    offer_id: int, staff: BoostManager, db: Annotated[Session, Depends(get_db)]
) -> Response:
    """Errors: E_OFFER_IN_USE (409) while boosts reference the offer."""
    boost_offers_service.delete_offer(db, offer_id)
    return Response(status_code=204)


@router.get("/boost-offers/{offer_id}/stats")
def offer_stats(
    offer_id: int, staff: BoostManager, db: Annotated[Session, Depends(get_db)]
) -> dict:
    result = boost_offers_service.offer_stats(db, offer_id)
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Reports & staff
# =============================================================================


@router.get("/reports")
def list_reports(
    staff: ReportManager,
    db: Annotated[Session, Depends(get_db)],
    status: str | None = Query(default=None),
) -> dict:
    reports = reports_service.list_reports(db, status)
    return success_response([r.model_dump(mode="json") for r in reports])


@router.patch("/reports/{report_id}")
def update_report(
    report_id: int,
    body: ReportUpdateRequest,
    staff: ReportManager,
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = reports_service.update_report(db, report_id, body)
    return success_response(result.model_dump(mode="json"))


@router.get("/staff")
def list_staff(staff: StaffReader, db: Annotated[Session, Depends(get_db)]) -> dict:
    members = staff_service.list_staff(db)
    return success_response([m.model_dump(mode="json") for m in members])
