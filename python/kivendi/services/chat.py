"""Chat message pipeline.

Runs for every inbound frame on a conversation socket:

1. Re-check the block between sender and recipient. A blocked frame is
   dropped silently and the socket stays open.
2. Validate by type, uploading base64 images through the object store.
3. Persist the message. This is the only step whose failure reaches the
   sender, as an error frame. Images uploaded for a message that failed to
   persist are deleted in a detached task.
4. Broadcast the persisted message to the conversation's sockets.
5. Signal the recipient's notification socket.
6. Push to the recipient's devices in a detached task.

Steps 4-6 are best-effort. Database work runs in the threadpool with a
session of its own, since a socket outlives any single request scope.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from kivendi.background import spawn_detached
from kivendi.db.models import Conversation, Message, MessageType, User
from kivendi.db.session import open_session
from kivendi.errors import ApiError, ApiErrorCode, ForbiddenError, InvalidRequestError
from kivendi.logging import get_logger
from kivendi.push.transport import PushTransport
from kivendi.realtime.hub import ChatHub, HubClient
from kivendi.responses import error_frame
from kivendi.schemas.conversation import ChatFrameIn, ChatImagesOut, MessageOut
from kivendi.services.blocks import get_participant_conversation, is_pair_blocked
from kivendi.services.notifications import (
    NotificationType,
    chat_push_body,
    chat_push_data,
    chat_push_preview,
    send_push_detached,
)
from kivendi.services.users import display_name
from kivendi.storage.client import ObjectStoreBase, StorageError, UploadFile

logger = get_logger(__name__)

NEW_MESSAGE_NOTIFICATION = "new_message_notification"


@dataclass(frozen=True)
class PersistedMessage:
    """A stored message plus the routing facts the fan-out needs."""

    message: MessageOut
    recipient_id: int
    ad_id: int
    sender_name: str


class MessageNotSavedError(ApiError):
    """The message could not be committed.

    uploaded lists the images already stored for it. The caller deletes them
    off the frame's path.
    """

    def __init__(self, uploaded: list[str]):
        super().__init__(ApiErrorCode.E_INTERNAL, "Message could not be saved")
        self.uploaded = uploaded


def _storage_to_api_error(e: StorageError) -> ApiError:
    try:
        code = ApiErrorCode(e.code)
    except ValueError:
        code = ApiErrorCode.E_STORAGE_ERROR
    return ApiError(code, e.message)


def authorize_conversation_socket(db: Session, conversation_id: int, user_id: int) -> Conversation:
    """Gate a socket upgrade: the user must take part in the conversation."""
    return get_participant_conversation(db, conversation_id, user_id)


# =============================================================================
# Validation & persistence
# =============================================================================


def _validate_frame(frame: ChatFrameIn, store: ObjectStoreBase, max_images: int) -> None:
    if frame.type == MessageType.text.value:
        if not (frame.text or "").strip():
            raise InvalidRequestError(ApiErrorCode.E_INVALID_MESSAGE, "Text message is empty")
    elif frame.type == MessageType.image.value:
        count = len(frame.images) + len(frame.image_urls)
        if count == 0:
            raise InvalidRequestError(ApiErrorCode.E_INVALID_MESSAGE, "Image message has no images")
        if count > max_images:
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_MESSAGE, f"At most {max_images} images per message"
            )
        if not all(store.owns_url(url) for url in frame.image_urls):
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_MESSAGE, "image_urls must be uploaded through this service"
            )
    elif frame.type == MessageType.offer.value:
        if frame.offer_amount is None or frame.offer_amount < 0:
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_MESSAGE, "offer_amount must be a non-negative number"
            )
    else:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_MESSAGE, "type must be one of: image, offer, text"
        )


def persist_message(
    db: Session,
    store: ObjectStoreBase,
    conversation_id: int,
    sender_id: int,
    frame: ChatFrameIn,
    *,
    max_images: int,
) -> PersistedMessage | None:
    """Validate and store one frame.

    Returns:
        The persisted message, or None when the pair is blocked and the
        frame is dropped.

    Raises:
        ApiError: Invalid frame or upload failure.
        MessageNotSavedError: Database failure, carrying the uploaded images.
    """
    conversation = get_participant_conversation(db, conversation_id, sender_id)
    recipient_id = conversation.other_participant(sender_id)

    if is_pair_blocked(db, sender_id, recipient_id):
        logger.info("chat_frame_dropped_blocked", recipient_id=recipient_id)
        return None

    _validate_frame(frame, store, max_images)

    uploaded: list[str] = []
    image_urls: list[str] = []
    text = None
    offer_amount = None
    if frame.type == MessageType.image.value:
        if frame.images:
            try:
                uploaded = store.upload_base64_images(frame.images, folder="chat")
            except StorageError as e:
                logger.warning("chat_image_upload_failed", error=e.message, code=e.code)
                raise _storage_to_api_error(e) from e
        image_urls = [*uploaded, *frame.image_urls]
        text = (frame.text or "").strip() or None
    elif frame.type == MessageType.offer.value:
        offer_amount = frame.offer_amount
        text = (frame.text or "").strip() or None
    else:
        text = frame.text.strip()

    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        type=frame.type,
        text=text,
        offer_amount=offer_amount,
        image_urls=image_urls,
    )
    db.add(message)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("chat_message_persist_failed", error=str(e), orphaned_images=len(uploaded))
        raise MessageNotSavedError(uploaded) from e

    sender = db.get(User, sender_id)
    logger.info("chat_message_persisted", message_id=message.id, message_type=message.type)
    return PersistedMessage(
        message=MessageOut.model_validate(message),
        recipient_id=recipient_id,
        ad_id=conversation.ad_id,
        sender_name=display_name(sender) if sender else "",
    )


def _persist_in_own_session(
    store: ObjectStoreBase,
    conversation_id: int,
    sender_id: int,
    frame: ChatFrameIn,
    max_images: int,
) -> PersistedMessage | None:
    with open_session() as db:
        return persist_message(
            db, store, conversation_id, sender_id, frame, max_images=max_images
        )


def send_chat_push(transport: PushTransport, persisted: PersistedMessage) -> None:
    """Push a chat message preview to the recipient's devices."""
    message = persisted.message
    preview = chat_push_preview(message.type, message.text, message.offer_amount)
    send_push_detached(
        transport,
        persisted.recipient_id,
        NotificationType.CHAT_MESSAGE.value,
        persisted.sender_name,
        chat_push_body(persisted.sender_name, preview),
        chat_push_data(
            conversation_id=message.conversation_id,
            ad_id=persisted.ad_id,
            message_id=message.id,
            sender_id=message.sender_id,
            sender_name=persisted.sender_name,
            message_type=message.type,
        ),
    )


# =============================================================================
# Socket frame handling
# =============================================================================


def _send_error(client: HubClient, code: ApiErrorCode, message: str) -> None:
    if not client.enqueue(error_frame(code, message)):
        logger.debug("chat_error_frame_not_sent", code=code.value)


async def handle_frame(
    raw: str,
    *,
    hub: ChatHub,
    client: HubClient,
    conversation_id: int,
    store: ObjectStoreBase,
    transport: PushTransport,
    max_images: int,
) -> PersistedMessage | None:
    """Process one inbound text frame from a conversation socket."""
    try:
        frame = ChatFrameIn.model_validate_json(raw)
    except ValidationError:
        _send_error(client, ApiErrorCode.E_INVALID_MESSAGE, "Malformed message frame")
        return None

    try:
        persisted = await run_in_threadpool(
            _persist_in_own_session, store, conversation_id, client.user_id, frame, max_images
        )
    except MessageNotSavedError as e:
        if e.uploaded:
            spawn_detached(store.delete_images, e.uploaded)
        _send_error(client, e.code, e.message)
        return None
    except ApiError as e:
        _send_error(client, e.code, e.message)
        return None

    if persisted is None:
        return None

    payload: dict[str, Any] = persisted.message.model_dump(mode="json")
    await hub.broadcast(conversation_id, payload)
    await hub.notify(
        persisted.recipient_id,
        {"type": NEW_MESSAGE_NOTIFICATION, "conversation_id": conversation_id},
    )
    spawn_detached(send_chat_push, transport, persisted)
    return persisted


# =============================================================================
# REST image upload
# =============================================================================


def upload_chat_images(
    db: Session,
    store: ObjectStoreBase,
    conversation_id: int,
    user_id: int,
    files: list[UploadFile],
    *,
    max_images: int,
) -> ChatImagesOut:
    """Upload images ahead of an image frame.

    Raises:
        ForbiddenError(E_BLOCKED): The pair is blocked.
        InvalidRequestError: No files, or more than max_images.
        ApiError: Invalid image or storage failure.
    """
    conversation = get_participant_conversation(db, conversation_id, user_id)
    if is_pair_blocked(db, user_id, conversation.other_participant(user_id)):
        raise ForbiddenError(ApiErrorCode.E_BLOCKED, "This conversation is blocked")
    if not files:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "No images provided")
    if len(files) > max_images:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, f"At most {max_images} images per message"
        )

    try:
        urls = store.upload_files(files, folder="chat")
    except StorageError as e:
        logger.warning("chat_image_upload_failed", error=e.message, code=e.code)
        raise _storage_to_api_error(e) from e

    logger.info("chat_images_uploaded", conversation_id=conversation_id, count=len(urls))
    return ChatImagesOut(image_urls=urls)
