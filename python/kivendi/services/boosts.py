"""Boost service layer.

Activation (purchase or admin grant) and the ad's is_boosted flag change in
one transaction. Two invariants hold for every ad:

- At most one boost row is active and unexpired at any instant.
- ad.is_boosted is true exactly when such a row exists.

The first is enforced by locking the ad row (SELECT ... FOR UPDATE) and
re-checking inside the activating transaction. Expiry is time-driven, so
the second is restored by expire_boosts(), which runs periodically.

Purchase flow:
    pre-checks (ad, offer, transaction not consumed, not already boosted)
    -> gateway verification (status, then amount)
    -> locked transaction: re-check, insert AdBoost + PaymentRecord, flag ad
    -> in-app notification and push to the owner
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kivendi.background import Schedule
from kivendi.config import Settings
from kivendi.db.models import (
    Ad,
    AdBoost,
    BoostOffer,
    PaymentRecord,
    PaymentStatus,
    User,
    utcnow,
)
from kivendi.db.session import transaction
from kivendi.errors import (
    ApiError,
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from kivendi.logging import get_logger
from kivendi.payments.kkiapay import PaymentGateway, PaymentGatewayError
from kivendi.push.transport import PushTransport
from kivendi.schemas.boost import (
    ActiveBoostOut,
    BoostActivatedOut,
    BoostDeactivatedOut,
    BoostedAdOut,
    BoostedAdsPageOut,
    BoostedAdsPagination,
    BoostGrantRequest,
    BoostHistoryItemOut,
    BoostOfferOut,
    BoostPurchaseRequest,
    BoostStatusOut,
)
from kivendi.services.notifications import NotificationType, notify_user
from kivendi.services.users import display_name, ensure_can_transact, get_user

logger = get_logger(__name__)

AMOUNT_TOLERANCE = 0.01
PAYMENT_METHOD_GATEWAY = "kkiapay"
PAYMENT_METHOD_ADMIN = "admin"
ADMIN_GRANT_PREFIX = "ADMIN_GRANT_"

DEFAULT_BOOSTED_ADS_LIMIT = 10
MAX_BOOSTED_ADS_LIMIT = 100


@dataclass
class ExpiryResult:
    """Outcome of one expire_boosts run."""

    deactivated_boosts: int = 0
    cleared_ads: int = 0
    restored_ads: int = 0


# =============================================================================
# Helper Functions
# =============================================================================


def _active_at(now: datetime):
    return and_(AdBoost.is_active.is_(True), AdBoost.end_date > now)


def has_active_boost(db: Session, ad_id: int, now: datetime | None = None) -> bool:
    now = now or utcnow()
    row = db.execute(
        select(AdBoost.id).where(AdBoost.ad_id == ad_id, _active_at(now)).limit(1)
    ).first()
    return row is not None


def refresh_ad_boost_flag(db: Session, ad: Ad, now: datetime | None = None) -> bool:
    """Set ad.is_boosted from its boost rows. Does not commit."""
    ad.is_boosted = has_active_boost(db, ad.id, now)
    return ad.is_boosted


def _lock_ad(db: Session, ad_id: int) -> Ad:
    ad = db.scalars(
        select(Ad)
        .where(Ad.id == ad_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
    if ad is None:
        raise NotFoundError(ApiErrorCode.E_AD_NOT_FOUND, "Ad not found")
    return ad


def _transaction_consumed(db: Session, transaction_id: str) -> bool:
    """A transaction is consumed once a purchase claimed it.

    Webhooks may record a transaction before the purchase call arrives;
    such records carry no user and do not count.
    """
    return bool(
        db.scalar(
            select(
                exists().where(
                    PaymentRecord.transaction_id == transaction_id,
                    PaymentRecord.user_id.is_not(None),
                )
                | exists().where(AdBoost.transaction_id == transaction_id)
            )
        )
    )


def _get_ad(db: Session, ad_id: int) -> Ad:
    ad = db.get(Ad, ad_id)
    if ad is None:
        raise NotFoundError(ApiErrorCode.E_AD_NOT_FOUND, "Ad not found")
    return ad


def _get_offer(db: Session, offer_id: int, *, active_only: bool) -> BoostOffer:
    offer = db.get(BoostOffer, offer_id)
    if offer is None or (active_only and not offer.is_active):
        raise NotFoundError(ApiErrorCode.E_OFFER_NOT_FOUND, "Boost offer not found")
    return offer


def _ensure_validated(ad: Ad) -> None:
    if not ad.is_validated:
        raise InvalidRequestError(
            ApiErrorCode.E_AD_NOT_VALIDATED, "The ad must be validated before it can be boosted"
        )


def _already_boosted() -> ConflictError:
    return ConflictError(ApiErrorCode.E_ALREADY_BOOSTED, "This ad already has an active boost")


def _duplicate_transaction() -> ConflictError:
    return ConflictError(
        ApiErrorCode.E_DUPLICATE_TRANSACTION, "This transaction has already been used"
    )


def _notify_failure(
    db: Session,
    schedule: Schedule,
    transport: PushTransport,
    ad: Ad,
    user_id: int,
    transaction_id: str,
    message: str,
    **extra,
) -> None:
    notify_user(
        db,
        schedule,
        transport,
        user_id,
        NotificationType.BOOST_FAILURE.value,
        "Échec du boost",
        message,
        {"ad_id": ad.id, "ad_title": ad.title, "transaction_id": transaction_id, **extra},
    )


# =============================================================================
# Purchase
# =============================================================================


def _verify_payment(
    db: Session,
    gateway: PaymentGateway,
    transport: PushTransport,
    schedule: Schedule,
    settings: Settings,
    ad: Ad,
    offer: BoostOffer,
    user_id: int,
    transaction_id: str,
):
    """Ask the gateway about the transaction and check status and amount."""
    try:
        verification = gateway.verify_transaction(transaction_id)
    except PaymentGatewayError as e:
        logger.warning(
            "boost_payment_verification_failed",
            ad_id=ad.id,
            transaction_id=transaction_id,
            status_code=e.status_code,
            error=e.message,
        )
        _notify_failure(
            db,
            schedule,
            transport,
            ad,
            user_id,
            transaction_id,
            f"Le paiement pour booster votre annonce \"{ad.title}\" n'a pas pu être vérifié. "
            "Veuillez réessayer.",
        )
        if e.is_client_error:
            raise InvalidRequestError(
                ApiErrorCode.E_PAYMENT_VERIFICATION_FAILED,
                f"Payment verification failed: {e.message}",
            ) from e
        raise ApiError(
            ApiErrorCode.E_PAYMENT_GATEWAY_UNAVAILABLE, "Payment gateway is unavailable"
        ) from e

    if not verification.is_successful:
        logger.info(
            "boost_payment_not_successful",
            ad_id=ad.id,
            transaction_id=transaction_id,
            status=verification.status,
            state=verification.state,
        )
        _notify_failure(
            db,
            schedule,
            transport,
            ad,
            user_id,
            transaction_id,
            f"Le paiement pour booster votre annonce \"{ad.title}\" n'a pas été validé "
            f"par KKiaPay. Statut: {verification.status}",
            status=verification.status,
        )
        raise ApiError(
            ApiErrorCode.E_PAYMENT_NOT_SUCCESSFUL, "The payment was not confirmed by the gateway"
        )

    if not settings.kkiapay_sandbox and abs(verification.amount - offer.price) > AMOUNT_TOLERANCE:
        logger.warning(
            "boost_payment_amount_mismatch",
            ad_id=ad.id,
            transaction_id=transaction_id,
            paid=verification.amount,
            expected=offer.price,
        )
        _notify_failure(
            db,
            schedule,
            transport,
            ad,
            user_id,
            transaction_id,
            f"Le montant du paiement ({verification.amount:.0f} FCFA) ne correspond pas au prix "
            f"de l'offre ({offer.price:.0f} FCFA) pour booster \"{ad.title}\".",
            amount_paid=verification.amount,
            expected_amount=offer.price,
        )
        raise InvalidRequestError(
            ApiErrorCode.E_AMOUNT_MISMATCH, "The payment amount does not match the offer price"
        )

    return verification


def purchase_boost(
    db: Session,
    *,
    gateway: PaymentGateway,
    transport: PushTransport,
    schedule: Schedule,
    settings: Settings,
    user_id: int,
    ad_id: int,
    request: BoostPurchaseRequest,
) -> BoostActivatedOut:
    """Verify a gateway payment and activate the boost.

    Raises:
        NotFoundError(E_AD_NOT_FOUND | E_OFFER_NOT_FOUND)
        ForbiddenError(E_NOT_AD_OWNER | E_ACCOUNT_BLOCKED | E_ACCOUNT_UNVERIFIED)
        InvalidRequestError(E_AD_NOT_VALIDATED | E_PAYMENT_VERIFICATION_FAILED | E_AMOUNT_MISMATCH)
        ConflictError(E_DUPLICATE_TRANSACTION | E_ALREADY_BOOSTED)
        ApiError(E_PAYMENT_NOT_SUCCESSFUL): Gateway reports a non-successful payment (402).
        ApiError(E_PAYMENT_GATEWAY_UNAVAILABLE): Gateway unreachable (502).
    """
    transaction_id = request.transaction_id.strip()
    if not transaction_id:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "transaction_id is required")

    ensure_can_transact(get_user(db, user_id))

    ad = _get_ad(db, ad_id)
    if ad.user_id != user_id:
        raise ForbiddenError(ApiErrorCode.E_NOT_AD_OWNER, "You do not own this ad")
    _ensure_validated(ad)
    offer = _get_offer(db, request.boost_offer_id, active_only=True)

    if _transaction_consumed(db, transaction_id):
        raise _duplicate_transaction()
    if has_active_boost(db, ad_id):
        raise _already_boosted()

    verification = _verify_payment(
        db, gateway, transport, schedule, settings, ad, offer, user_id, transaction_id
    )

    recorded_amount = verification.amount
    if settings.substitute_sandbox_amount and recorded_amount == 0:
        recorded_amount = offer.price

    now = utcnow()
    end_date = now + timedelta(days=offer.duration_days)
    try:
        with transaction(db):
            locked = _lock_ad(db, ad_id)
            if _transaction_consumed(db, transaction_id):
                raise _duplicate_transaction()
            if has_active_boost(db, ad_id, now):
                raise _already_boosted()

            boost = AdBoost(
                ad_id=ad_id,
                boost_offer_id=offer.id,
                user_id=user_id,
                start_date=now,
                end_date=end_date,
                is_active=True,
                payment_status=PaymentStatus.completed.value,
                payment_method=PAYMENT_METHOD_GATEWAY,
                transaction_id=transaction_id,
                amount_paid=offer.price,
            )
            db.add(boost)
            db.flush()

            record = db.scalars(
                select(PaymentRecord).where(PaymentRecord.transaction_id == transaction_id)
            ).first()
            if record is None:
                record = PaymentRecord(transaction_id=transaction_id)
                db.add(record)
            record.boost_id = boost.id
            record.ad_id = ad_id
            record.user_id = user_id
            record.amount = recorded_amount
            record.status = verification.status
            record.state = verification.state
            record.raw_response = verification.raw
            record.verified_at = now
            locked.is_boosted = True
    except IntegrityError as e:
        logger.warning("boost_activation_conflict", ad_id=ad_id, transaction_id=transaction_id)
        raise _duplicate_transaction() from e

    logger.info(
        "boost_purchased",
        ad_id=ad_id,
        boost_id=boost.id,
        offer_id=offer.id,
        transaction_id=transaction_id,
        amount=recorded_amount,
    )

    notify_user(
        db,
        schedule,
        transport,
        user_id,
        NotificationType.BOOST_SUCCESS.value,
        "Boost activé avec succès !",
        f"Votre annonce \"{ad.title}\" a été boostée avec succès avec l'offre {offer.name} "
        f"pour {offer.duration_days} jours.",
        {
            "ad_id": ad_id,
            "ad_title": ad.title,
            "boost_id": boost.id,
            "boost_name": offer.name,
            "duration_days": offer.duration_days,
            "amount_paid": offer.price,
            "start_date": now.date().isoformat(),
            "end_date": end_date.date().isoformat(),
            "transaction_id": transaction_id,
        },
    )

    return BoostActivatedOut(
        message="Boost activé avec succès",
        boost_id=boost.id,
        ad_id=ad_id,
        start_date=now,
        end_date=end_date,
    )


# =============================================================================
# Admin operations
# =============================================================================


def grant_boost(
    db: Session,
    *,
    transport: PushTransport,
    schedule: Schedule,
    admin_id: int,
    request: BoostGrantRequest,
) -> BoostActivatedOut:
    """Activate a boost without payment.

    Raises:
        NotFoundError(E_AD_NOT_FOUND | E_OFFER_NOT_FOUND)
        InvalidRequestError(E_AD_NOT_VALIDATED)
        ConflictError(E_ALREADY_BOOSTED)
    """
    ad = _get_ad(db, request.ad_id)
    _ensure_validated(ad)
    offer = _get_offer(db, request.boost_offer_id, active_only=False)

    now = utcnow()
    end_date = now + timedelta(days=offer.duration_days)
    transaction_id = f"{ADMIN_GRANT_PREFIX}{uuid4().hex}"
    with transaction(db):
        locked = _lock_ad(db, ad.id)
        if has_active_boost(db, ad.id, now):
            raise _already_boosted()
        boost = AdBoost(
            ad_id=ad.id,
            boost_offer_id=offer.id,
            user_id=ad.user_id,
            start_date=now,
            end_date=end_date,
            is_active=True,
            payment_status=PaymentStatus.admin_granted.value,
            payment_method=PAYMENT_METHOD_ADMIN,
            transaction_id=transaction_id,
            amount_paid=0,
        )
        db.add(boost)
        locked.is_boosted = True

    logger.info(
        "boost_granted",
        ad_id=ad.id,
        boost_id=boost.id,
        offer_id=offer.id,
        admin_id=admin_id,
        reason=request.reason,
    )

    notify_user(
        db,
        schedule,
        transport,
        ad.user_id,
        NotificationType.BOOST_SUCCESS.value,
        "Boost activé par un administrateur !",
        f"Votre annonce \"{ad.title}\" a été boostée par notre équipe avec l'offre {offer.name} "
        f"pour {offer.duration_days} jours.",
        {
            "ad_id": ad.id,
            "ad_title": ad.title,
            "boost_id": boost.id,
            "boost_name": offer.name,
            "duration_days": offer.duration_days,
            "start_date": now.date().isoformat(),
            "end_date": end_date.date().isoformat(),
        },
    )

    return BoostActivatedOut(
        message="Annonce boostée avec succès par l'administrateur",
        boost_id=boost.id,
        ad_id=ad.id,
        start_date=now,
        end_date=end_date,
    )


def deactivate_boost(db: Session, boost_id: int) -> BoostDeactivatedOut:
    """End a boost now; clears ad.is_boosted when no other active boost remains.

    Raises:
        NotFoundError(E_BOOST_NOT_FOUND): Unknown boost.
    """
    boost = db.get(AdBoost, boost_id)
    if boost is None:
        raise NotFoundError(ApiErrorCode.E_BOOST_NOT_FOUND, "Boost not found")

    with transaction(db):
        ad = _lock_ad(db, boost.ad_id)
        boost.is_active = False
        db.flush()
        refresh_ad_boost_flag(db, ad)

    logger.info("boost_deactivated", boost_id=boost.id, ad_id=ad.id, ad_is_boosted=ad.is_boosted)
    return BoostDeactivatedOut(
        id=boost.id, ad_id=ad.id, is_active=boost.is_active, ad_is_boosted=ad.is_boosted
    )


def list_active_boosts(db: Session) -> list[ActiveBoostOut]:
    """Every active, unexpired boost, soonest to end first."""
    rows = db.execute(
        select(AdBoost, Ad, User, BoostOffer)
        .join(Ad, Ad.id == AdBoost.ad_id)
        .join(User, User.id == AdBoost.user_id)
        .join(BoostOffer, BoostOffer.id == AdBoost.boost_offer_id)
        .where(_active_at(utcnow()))
        .order_by(AdBoost.end_date.asc(), AdBoost.id.asc())
    ).all()
    return [
        ActiveBoostOut(
            id=boost.id,
            ad_id=ad.id,
            ad_title=ad.title,
            user_id=user.id,
            user_name=display_name(user),
            boost_offer_id=offer.id,
            offer_name=offer.name,
            start_date=boost.start_date,
            end_date=boost.end_date,
            payment_status=boost.payment_status,
            payment_method=boost.payment_method,
            transaction_id=boost.transaction_id,
            amount_paid=boost.amount_paid,
        )
        for boost, ad, user, offer in rows
    ]


# =============================================================================
# Listings
# =============================================================================


def list_offers(db: Session) -> list[BoostOfferOut]:
    """Active offers, by display order then price."""
    offers = db.scalars(
        select(BoostOffer)
        .where(BoostOffer.is_active.is_(True))
        .order_by(BoostOffer.display_order.asc(), BoostOffer.price.asc(), BoostOffer.id.asc())
    ).all()
    return [BoostOfferOut.model_validate(o) for o in offers]


def get_offer(db: Session, offer_id: int) -> BoostOfferOut:
    """One active offer. Inactive offers are hidden from the public."""
    return BoostOfferOut.model_validate(_get_offer(db, offer_id, active_only=True))


def list_boosted_ads(
    db: Session, page: int = 1, limit: int = DEFAULT_BOOSTED_ADS_LIMIT
) -> BoostedAdsPageOut:
    """Publicly visible ads with an active boost, highest priority first."""
    page = max(1, page)
    limit = max(1, min(limit, MAX_BOOSTED_ADS_LIMIT))
    now = utcnow()

    filters = (
        Ad.is_validated.is_(True),
        Ad.is_rejected.is_(False),
        Ad.is_deactivated.is_(False),
        Ad.is_sold.is_(False),
        _active_at(now),
    )
    base = (
        select(Ad, AdBoost, BoostOffer)
        .join(AdBoost, AdBoost.ad_id == Ad.id)
        .join(BoostOffer, BoostOffer.id == AdBoost.boost_offer_id)
        .where(*filters)
    )

    total = db.scalar(select(func.count()).select_from(base.subquery())) or 0
    rows = db.execute(
        base.order_by(
            BoostOffer.position_priority.desc(), Ad.created_at.desc(), Ad.id.desc()
        )
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return BoostedAdsPageOut(
        ads=[
            BoostedAdOut(
                id=ad.id,
                user_id=ad.user_id,
                title=ad.title,
                price=ad.price,
                city=ad.city,
                image_url=ad.first_image,
                created_at=ad.created_at,
                boost_id=boost.id,
                boost_end_date=boost.end_date,
                offer_name=offer.name,
                offer_color=offer.color,
                priority=offer.position_priority,
            )
            for ad, boost, offer in rows
        ],
        pagination=BoostedAdsPagination(
            current_page=page,
            total_pages=math.ceil(total / limit) if total else 0,
            total_ads=total,
            limit=limit,
        ),
    )


def list_boost_history(db: Session, user_id: int) -> list[BoostHistoryItemOut]:
    """Every boost the user has held, newest first."""
    rows = db.execute(
        select(AdBoost, Ad, BoostOffer)
        .join(Ad, Ad.id == AdBoost.ad_id)
        .join(BoostOffer, BoostOffer.id == AdBoost.boost_offer_id)
        .where(AdBoost.user_id == user_id)
        .order_by(AdBoost.created_at.desc(), AdBoost.id.desc())
    ).all()
    return [
        BoostHistoryItemOut(
            id=boost.id,
            ad_id=ad.id,
            ad_title=ad.title,
            ad_image_url=ad.first_image,
            boost_offer_id=offer.id,
            offer_name=offer.name,
            duration_days=offer.duration_days,
            color=offer.color,
            start_date=boost.start_date,
            end_date=boost.end_date,
            is_active=boost.is_active,
            payment_status=boost.payment_status,
            payment_method=boost.payment_method,
            transaction_id=boost.transaction_id,
            amount_paid=boost.amount_paid,
            created_at=boost.created_at,
        )
        for boost, ad, offer in rows
    ]


def check_ad_boost(db: Session, ad_id: int) -> BoostStatusOut:
    """Boost status derived from the newest active, unexpired row."""
    _get_ad(db, ad_id)
    row = db.execute(
        select(AdBoost, BoostOffer)
        .join(BoostOffer, BoostOffer.id == AdBoost.boost_offer_id)
        .where(AdBoost.ad_id == ad_id, _active_at(utcnow()))
        .order_by(AdBoost.created_at.desc(), AdBoost.id.desc())
        .limit(1)
    ).first()
    if row is None:
        return BoostStatusOut(ad_id=ad_id, is_boosted=False)

    boost, offer = row
    return BoostStatusOut(
        ad_id=ad_id,
        is_boosted=True,
        end_date=boost.end_date,
        offer_name=offer.name,
        offer_color=offer.color,
        priority=offer.position_priority,
    )


# =============================================================================
# Expiration
# =============================================================================


def expire_boosts(db: Session, now: datetime | None = None) -> ExpiryResult:
    """Deactivate ended boosts and bring every ad's is_boosted flag in line.

    Safe to run concurrently with purchases: activation locks the ad row and
    re-checks before writing.
    """
    now = now or utcnow()
    result = ExpiryResult()
    has_active = exists().where(AdBoost.ad_id == Ad.id, _active_at(now))

    with transaction(db):
        result.deactivated_boosts = (
            db.execute(
                update(AdBoost)
                .where(AdBoost.is_active.is_(True), AdBoost.end_date <= now)
                .values(is_active=False, updated_at=now)
            ).rowcount
            or 0
        )
        result.cleared_ads = (
            db.execute(
                update(Ad)
                .where(Ad.is_boosted.is_(True), ~has_active)
                .values(is_boosted=False)
                .execution_options(synchronize_session=False)
            ).rowcount
            or 0
        )
        result.restored_ads = (
            db.execute(
                update(Ad)
                .where(Ad.is_boosted.is_(False), has_active)
                .values(is_boosted=True)
                .execution_options(synchronize_session=False)
            ).rowcount
            or 0
        )

    db.expire_all()

    if result.restored_ads:
        logger.error("boost_flag_out_of_sync", restored_ads=result.restored_ads)
    logger.info(
        "boosts_expired",
        deactivated_boosts=result.deactivated_boosts,
        cleared_ads=result.cleared_ads,
    )
    return result
