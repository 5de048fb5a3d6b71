"""Boost offer administration.

Offers are soft-disabled through is_active. Deletion is refused while any
boost row references the offer: active boosts block it explicitly, and
past boosts keep it alive through the RESTRICT foreign key.
"""

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kivendi.db.models import AdBoost, BoostOffer, utcnow
from kivendi.errors import ApiErrorCode, ConflictError, InvalidRequestError, NotFoundError
from kivendi.logging import get_logger
from kivendi.schemas.boost import (
    BoostOfferCreateRequest,
    BoostOfferOut,
    BoostOfferStatsOut,
    BoostOfferUpdateRequest,
)

logger = get_logger(__name__)


def _get(db: Session, offer_id: int) -> BoostOffer:
    offer = db.get(BoostOffer, offer_id)
    if offer is None:
        raise NotFoundError(ApiErrorCode.E_OFFER_NOT_FOUND, "Boost offer not found")
    return offer


def _validate(name: str, duration_days: int, price: float) -> None:
    if not name.strip():
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "name is required")
    if duration_days <= 0:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "duration_days must be > 0")
    if price < 0:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "price must be >= 0")


def _ensure_name_free(db: Session, name: str, exclude_id: int | None = None) -> None:
    stmt = select(BoostOffer.id).where(BoostOffer.name == name)
    if exclude_id is not None:
        stmt = stmt.where(BoostOffer.id != exclude_id)
    if db.execute(stmt.limit(1)).first() is not None:
        raise ConflictError(
            ApiErrorCode.E_OFFER_NAME_TAKEN, "An offer with this name already exists"
        )


def _commit_offer(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(
            ApiErrorCode.E_OFFER_NAME_TAKEN, "An offer with this name already exists"
        ) from e


def list_all_offers(db: Session) -> list[BoostOfferOut]:
    """All offers including inactive ones, by display order then price."""
    offers = db.scalars(
        select(BoostOffer).order_by(
            BoostOffer.display_order.asc(), BoostOffer.price.asc(), BoostOffer.id.asc()
        )
    ).all()
    return [BoostOfferOut.model_validate(o) for o in offers]


def create_offer(db: Session, request: BoostOfferCreateRequest) -> BoostOfferOut:
    name = request.name.strip()
    _validate(name, request.duration_days, request.price)
    _ensure_name_free(db, name)

    offer = BoostOffer(**{**request.model_dump(), "name": name})
    db.add(offer)
    _commit_offer(db)
    logger.info("boost_offer_created", offer_id=offer.id, name=offer.name)
    return BoostOfferOut.model_validate(offer)


def update_offer(db: Session, offer_id: int, request: BoostOfferUpdateRequest) -> BoostOfferOut:
    """Partial update. Validation applies to the merged result."""
    offer = _get(db, offer_id)
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in changes:
        changes["name"] = changes["name"].strip()

    _validate(
        changes.get("name", offer.name),
        changes.get("duration_days", offer.duration_days),
        changes.get("price", offer.price),
    )
    if "name" in changes and changes["name"] != offer.name:
        _ensure_name_free(db, changes["name"], exclude_id=offer.id)

    for field, value in changes.items():
        setattr(offer, field, value)
    offer.updated_at = utcnow()
    _commit_offer(db)
    logger.info("boost_offer_updated", offer_id=offer.id, fields=sorted(changes))
    return BoostOfferOut.model_validate(offer)


def toggle_offer(db: Session, offer_id: int) -> BoostOfferOut:
    offer = _get(db, offer_id)
    offer.is_active = not offer.is_active
    offer.updated_at = utcnow()
    db.commit()
    logger.info("boost_offer_toggled", offer_id=offer.id, is_active=offer.is_active)
    return BoostOfferOut.model_validate(offer)


def delete_offer(db: Session, offer_id: int) -> None:
    """Delete an offer no boost references.

    Raises:
        NotFoundError(E_OFFER_NOT_FOUND): Unknown offer.
        ConflictError(E_OFFER_IN_USE): Boosts still reference it.
    """
    offer = _get(db, offer_id)
    now = utcnow()
    active = db.scalar(
        select(func.count())
        .select_from(AdBoost)
        .where(
            AdBoost.boost_offer_id == offer_id,
            AdBoost.is_active.is_(True),
            AdBoost.end_date > now,
        )
    )
    if active:
        raise ConflictError(
            ApiErrorCode.E_OFFER_IN_USE, f"Cannot delete offer: {active} active boost(s) use it"
        )

    db.delete(offer)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(
            ApiErrorCode.E_OFFER_IN_USE,
            "Cannot delete offer: past boosts reference it, disable it instead",
        ) from e
    logger.info("boost_offer_deleted", offer_id=offer_id)


def offer_stats(db: Session, offer_id: int) -> BoostOfferStatsOut:
    _get(db, offer_id)
    now = utcnow()
    total, active, completed, revenue = db.execute(
        select(
            func.count(AdBoost.id),
            func.coalesce(
                func.sum(
                    case((AdBoost.is_active.is_(True) & (AdBoost.end_date > now), 1), else_=0)
                ),
                0,
            ),
            func.coalesce(func.sum(case((AdBoost.end_date <= now, 1), else_=0)), 0),
            func.coalesce(func.sum(AdBoost.amount_paid), 0),
        ).where(AdBoost.boost_offer_id == offer_id)
    ).one()
    return BoostOfferStatsOut(
        offer_id=offer_id,
        total_purchases=total,
        active_boosts=active,
        completed_boosts=completed,
        total_revenue=float(revenue),
    )
