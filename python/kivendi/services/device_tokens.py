"""Device token registration.

A token value is globally unique. Registering a token that already exists
under another user reassigns it instead of duplicating it, so a shared or
resold device only ever receives the current owner's pushes.
"""

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from kivendi.db.models import DeviceToken, DeviceType, utcnow
from kivendi.db.upsert import conflict_insert
from kivendi.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from kivendi.logging import get_logger
from kivendi.push.transport import redact_token
from kivendi.schemas.notification import DeviceTokenOut

logger = get_logger(__name__)

VALID_DEVICE_TYPES = {t.value for t in DeviceType}


def normalize_device_type(device_type: str) -> str:
    """Lowercase and validate.

    Raises:
        InvalidRequestError: Not one of android, ios, web.
    """
    normalized = device_type.strip().lower()
    if normalized not in VALID_DEVICE_TYPES:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"device_type must be one of: {', '.join(sorted(VALID_DEVICE_TYPES))}",
        )
    return normalized


def register_device_token(
    db: Session, user_id: int, token: str, device_type: str
) -> DeviceTokenOut:
    """Upsert a token for user_id, taking it over from any previous owner."""
    token = token.strip()
    if not token:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "token is required")
    device_type = normalize_device_type(device_type)

    previous_owner = db.scalar(select(DeviceToken.user_id).where(DeviceToken.token == token))

    now = utcnow()
    stmt = conflict_insert(db, DeviceToken).values(
        token=token, user_id=user_id, device_type=device_type, created_at=now, updated_at=now
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[DeviceToken.token],
        set_={"user_id": user_id, "device_type": device_type, "updated_at": now},
    )
    db.execute(stmt)
    db.commit()

    if previous_owner is not None and previous_owner != user_id:
        logger.info(
            "device_token_reassigned",
            token=redact_token(token),
            previous_user_id=previous_owner,
            user_id=user_id,
        )
    else:
        logger.info("device_token_registered", token=redact_token(token), device_type=device_type)

    return DeviceTokenOut(token=token, user_id=user_id, device_type=device_type)


def unregister_device_token(db: Session, user_id: int, token: str) -> None:
    """Remove the viewer's token (logout).

    Raises:
        NotFoundError(E_DEVICE_TOKEN_NOT_FOUND): Token unknown or owned by someone else.
    """
    result = db.execute(
        delete(DeviceToken).where(
            DeviceToken.token == token.strip(), DeviceToken.user_id == user_id
        )
    )
    db.commit()
    if not result.rowcount:
        raise NotFoundError(ApiErrorCode.E_DEVICE_TOKEN_NOT_FOUND, "Device token not found")
    logger.info("device_token_unregistered", token=redact_token(token))
