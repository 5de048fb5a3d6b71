"""Notification service layer.

In-app notifications are rows in `notifications`. Push delivery fans out
to every device token of the user through a PushTransport:

- The global push_notifications preference is the only gate. Per-type
  switches are stored for clients but not consulted here.
- Each token is attempted independently. A failure that marks the token
  invalid deletes it; other failures are counted and logged.
- send_push never raises for delivery problems.

Pushes are best-effort and run after the response: callers hand
send_push_detached to a `schedule` callable (BackgroundTasks.add_task for
REST, spawn_detached for WebSocket loops). The detached variant opens its
own session because the caller's session is closed by then.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from kivendi.background import Schedule
from kivendi.db.models import (
    DeviceToken,
    MessageType,
    Notification,
    NotificationPreference,
    utcnow,
)
from kivendi.db.session import open_session
from kivendi.db.upsert import conflict_insert
from kivendi.errors import ApiErrorCode, NotFoundError
from kivendi.logging import get_logger
from kivendi.push.transport import (
    PushDeliveryError,
    PushMessage,
    PushTransport,
    redact_token,
    stringify_data,
)
from kivendi.schemas.notification import (
    NotificationOut,
    NotificationPageOut,
    NotificationPagination,
    NotificationPreferencesOut,
    NotificationPreferencesUpdate,
)

logger = get_logger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class NotificationType(str, Enum):
    """Notification and push `type` values understood by the clients."""

    CHAT_MESSAGE = "chat_message"
    BOOST_SUCCESS = "boost_success"
    BOOST_FAILURE = "boost_failure"
    AD_VALIDATED = "ad_validated"
    AD_REJECTED = "ad_rejected"
    AD_DEACTIVATED = "ad_deactivated"
    AD_DELETED = "ad_deleted"


@dataclass
class PushResult:
    """Aggregate outcome of one send_push call."""

    sent: int = 0
    failed: int = 0
    pruned: int = 0
    skipped: str | None = None  # "push_disabled" | "no_tokens"


# =============================================================================
# In-app notifications
# =============================================================================


def create_notification(
    db: Session,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
    *,
    commit: bool = True,
) -> Notification:
    """Write an in-app notification."""
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data,
    )
    db.add(notification)
    if commit:
        db.commit()
    else:
        db.flush()
    logger.info("notification_created", notification_type=type, recipient_id=user_id)
    return notification


def list_notifications(
    db: Session,
    user_id: int,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    unread_only: bool = False,
) -> NotificationPageOut:
    """Newest-first page of the user's notifications."""
    page = max(1, page)
    limit = max(1, min(limit, MAX_LIMIT))

    filters = [Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.is_read.is_(False))

    total = db.scalar(select(func.count()).select_from(Notification).where(*filters)) or 0
    rows = db.scalars(
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return NotificationPageOut(
        notifications=[NotificationOut.model_validate(n) for n in rows],
        pagination=NotificationPagination(
            current_page=page,
            total_pages=math.ceil(total / limit) if total else 0,
            total=total,
            limit=limit,
        ),
    )


def _get_owned(db: Session, user_id: int, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError(ApiErrorCode.E_NOTIFICATION_NOT_FOUND, "Notification not found")
    return notification


def mark_notification_read(db: Session, user_id: int, notification_id: int) -> NotificationOut:
    """Mark one notification read.

    Raises:
        NotFoundError(E_NOTIFICATION_NOT_FOUND): Unknown or not the user's.
    """
    notification = _get_owned(db, user_id, notification_id)
    if not notification.is_read:
        notification.is_read = True
        db.commit()
    return NotificationOut.model_validate(notification)


def mark_all_read(db: Session, user_id: int) -> int:
    """Mark every unread notification read. Returns the number updated."""
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    db.commit()
    return result.rowcount or 0


def delete_notification(db: Session, user_id: int, notification_id: int) -> None:
    notification = _get_owned(db, user_id, notification_id)
    db.delete(notification)
    db.commit()


def unread_count(db: Session, user_id: int) -> int:
    return (
        db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        or 0
    )


# =============================================================================
# Preferences
# =============================================================================


def get_preferences(db: Session, user_id: int) -> NotificationPreferencesOut:
    """Stored preferences, or the all-enabled defaults when no row exists."""
    prefs = db.get(NotificationPreference, user_id)
    if prefs is None:
        return NotificationPreferencesOut()
    return NotificationPreferencesOut.model_validate(prefs)


def update_preferences(
    db: Session, user_id: int, request: NotificationPreferencesUpdate
) -> NotificationPreferencesOut:
    """Upsert every preference flag."""
    values = request.model_dump()
    stmt = conflict_insert(db, NotificationPreference).values(user_id=user_id, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[NotificationPreference.user_id],
        set_={**values, "updated_at": utcnow()},
    )
    db.execute(stmt)
    db.commit()
    db.expire_all()
    return get_preferences(db, user_id)


def push_enabled(db: Session, user_id: int) -> bool:
    prefs = db.get(NotificationPreference, user_id)
    return prefs is None or prefs.push_notifications


# =============================================================================
# Push
# =============================================================================


def build_push_message(
    type: str, title: str, body: str, data: dict[str, Any] | None = None
) -> PushMessage:
    """Normalized payload: caller data plus type, title and body."""
    payload = stringify_data(data or {})
    payload.update({"type": type, "title": title, "body": body})
    return PushMessage(title=title, body=body, data=payload)


def send_push(
    db: Session,
    transport: PushTransport,
    user_id: int,
    type: str,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> PushResult:
    """Deliver a push to every device of the user.

    Returns:
        PushResult with per-token counts. Delivery errors are never raised.
    """
    if not push_enabled(db, user_id):
        logger.info("push_skipped", recipient_id=user_id, reason="push_disabled")
        return PushResult(skipped="push_disabled")

    tokens = db.scalars(select(DeviceToken.token).where(DeviceToken.user_id == user_id)).all()
    if not tokens:
        logger.info("push_skipped", recipient_id=user_id, reason="no_tokens")
        return PushResult(skipped="no_tokens")

    message = build_push_message(type, title, body, data)
    result = PushResult()
    invalid: list[str] = []

    for token in tokens:
        try:
            transport.send(token, message)
            result.sent += 1
        except PushDeliveryError as e:
            result.failed += 1
            logger.warning(
                "push_delivery_failed",
                recipient_id=user_id,
                token=redact_token(token),
                invalid_token=e.invalid_token,
                error=e.message,
            )
            if e.invalid_token:
                invalid.append(token)

    if invalid:
        # Scoped to the user: a token reassigned meanwhile belongs to someone else now.
        deleted = db.execute(
            delete(DeviceToken).where(
                DeviceToken.token.in_(invalid), DeviceToken.user_id == user_id
            )
        )
        db.commit()
        result.pruned = deleted.rowcount or 0

    logger.info(
        "push_sent",
        recipient_id=user_id,
        notification_type=type,
        sent=result.sent,
        failed=result.failed,
        pruned=result.pruned,
    )
    return result


def send_push_detached(
    transport: PushTransport,
    user_id: int,
    type: str,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> PushResult:
    """send_push with a session of its own, for post-response execution."""
    with open_session() as db:
        return send_push(db, transport, user_id, type, title, body, data)


def queue_push(
    schedule: Schedule,
    transport: PushTransport,
    user_id: int,
    type: str,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> None:
    schedule(send_push_detached, transport, user_id, type, title, body, data)


def notify_user(
    db: Session,
    schedule: Schedule,
    transport: PushTransport,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> Notification:
    """Write an in-app notification and queue the matching push."""
    notification = create_notification(db, user_id, type, title, message, data)
    queue_push(schedule, transport, user_id, type, title, message, data)
    return notification


# =============================================================================
# Chat push
# =============================================================================


def format_amount(amount: float | None) -> str:
    """1500.0 -> "1500", 1500.5 -> "1500.50"."""
    if amount is None:
        return "0"
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.2f}"


def chat_push_preview(message_type: str, text: str | None, offer_amount: float | None) -> str:
    if message_type == MessageType.text.value and text:
        return text
    if message_type == MessageType.image.value:
        return "📷 Image partagée"
    if message_type == MessageType.offer.value and offer_amount is not None:
        return f"Nouvelle offre : {offer_amount:.0f} FCFA"
    return "Nouveau message"


def chat_push_body(sender_name: str, preview: str) -> str:
    return f"{sender_name}: {preview}"


def chat_push_data(
    *,
    conversation_id: int,
    ad_id: int,
    message_id: int,
    sender_id: int,
    sender_name: str,
    message_type: str,
) -> dict[str, Any]:
    return {
        "conversation_id": conversation_id,
        "ad_id": ad_id,
        "message_id": message_id,
        "sender_id": sender_id,
        "sender_name": sender_name,
        "sender_display_name": sender_name,
        "chat_message_type": message_type,
    }
