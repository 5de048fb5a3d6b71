"""Ad moderation by staff.

Each moderation action sets exactly one of is_validated, is_rejected and
is_deactivated and clears the other two, then notifies the owner in-app
and by push. The rejection reason travels only in the notification; it is
not stored on the ad.

Deleting an ad removes its conversations, messages and boosts through
ON DELETE CASCADE in one transaction. Owner notification and image
cleanup happen after commit and never fail the request.
"""

from sqlalchemy.orm import Session

from kivendi.background import Schedule
from kivendi.db.models import Ad
from kivendi.db.session import transaction
from kivendi.errors import ApiErrorCode, NotFoundError
from kivendi.logging import get_logger
from kivendi.push.transport import PushTransport
from kivendi.schemas.moderation import AdDeletedOut, AdModerationOut, RejectAdRequest
from kivendi.services.notifications import NotificationType, notify_user
from kivendi.storage.client import ObjectStoreBase

logger = get_logger(__name__)

DEFAULT_REJECTION_REASON = "non spécifiée"


def _get_ad(db: Session, ad_id: int) -> Ad:
    ad = db.get(Ad, ad_id)
    if ad is None:
        raise NotFoundError(ApiErrorCode.E_AD_NOT_FOUND, "Ad not found")
    return ad


def _set_flags(db: Session, ad: Ad, *, validated=False, rejected=False, deactivated=False) -> None:
    ad.is_validated = validated
    ad.is_rejected = rejected
    ad.is_deactivated = deactivated
    db.commit()


def _out(ad: Ad) -> AdModerationOut:
    return AdModerationOut(
        ad_id=ad.id,
        is_validated=ad.is_validated,
        is_rejected=ad.is_rejected,
        is_deactivated=ad.is_deactivated,
    )


def validate_ad(
    db: Session, schedule: Schedule, transport: PushTransport, ad_id: int
) -> AdModerationOut:
    ad = _get_ad(db, ad_id)
    _set_flags(db, ad, validated=True)
    logger.info("ad_validated", ad_id=ad.id)

    notify_user(
        db,
        schedule,
        transport,
        ad.user_id,
        NotificationType.AD_VALIDATED.value,
        "Votre annonce a été approuvée !",
        f"Bonne nouvelle ! Votre annonce « {ad.title} » a été validée et est maintenant "
        "visible par tous.",
        {"ad_id": ad.id},
    )
    return _out(ad)


def reject_ad(
    db: Session,
    schedule: Schedule,
    transport: PushTransport,
    ad_id: int,
    request: RejectAdRequest,
) -> AdModerationOut:
    ad = _get_ad(db, ad_id)
    reason = (request.reason or "").strip() or DEFAULT_REJECTION_REASON
    _set_flags(db, ad, rejected=True)
    logger.info("ad_rejected", ad_id=ad.id, reason=reason)

    notify_user(
        db,
        schedule,
        transport,
        ad.user_id,
        NotificationType.AD_REJECTED.value,
        "Votre annonce a été rejetée",
        f"Malheureusement, votre annonce « {ad.title} » n'a pas pu être validée. "
        f"Raison : {reason}",
        {"ad_id": ad.id, "reason": reason},
    )
    return _out(ad)


def deactivate_ad(
    db: Session, schedule: Schedule, transport: PushTransport, ad_id: int
) -> AdModerationOut:
    ad = _get_ad(db, ad_id)
    _set_flags(db, ad, deactivated=True)
    logger.info("ad_deactivated", ad_id=ad.id)

    notify_user(
        db,
        schedule,
        transport,
        ad.user_id,
        NotificationType.AD_DEACTIVATED.value,
        "Votre annonce a été désactivée",
        f"Votre annonce « {ad.title} » a été désactivée par un administrateur. "
        "Elle n'est plus visible sur la plateforme.",
        {"ad_id": ad.id},
    )
    return _out(ad)


def delete_ad(
    db: Session,
    schedule: Schedule,
    transport: PushTransport,
    store: ObjectStoreBase,
    ad_id: int,
) -> AdDeletedOut:
    """Delete an ad and everything hanging off it.

    Raises:
        NotFoundError(E_AD_NOT_FOUND): Unknown ad.
    """
    ad = _get_ad(db, ad_id)
    owner_id = ad.user_id
    title = ad.title
    images = list(ad.images or [])

    with transaction(db):
        db.delete(ad)
    logger.info("ad_deleted", ad_id=ad_id, owner_id=owner_id, image_count=len(images))

    notify_user(
        db,
        schedule,
        transport,
        owner_id,
        NotificationType.AD_DELETED.value,
        "Votre annonce a été supprimée",
        f"Votre annonce « {title} » a été supprimée par un administrateur car elle ne "
        "respectait pas nos conditions d'utilisation.",
        {"ad_id": ad_id},
    )
    if images:
        schedule(store.delete_images, images)
    return AdDeletedOut(ad_id=ad_id)
