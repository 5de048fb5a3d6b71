"""Conversation API routes.

Route handlers for the REST side of the chat: opening conversations,
history, read receipts, image uploads and the per-conversation safety
actions (block, unblock, report). Live messages travel over the
conversation socket in kivendi.api.routes.ws.

All routes require a user token.
Response envelope: {"data": ...}
Error envelope: {"error": {"code": "...", "message": "...", "request_id": "..."}}
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, Response
from fastapi import UploadFile as MultipartFile
from sqlalchemy.orm import Session

from kivendi.api.deps import get_app_settings, get_db, get_object_store
from kivendi.auth.middleware import Viewer, get_viewer
from kivendi.config import Settings
from kivendi.responses import success_response
from kivendi.schemas.conversation import ReportCreateRequest, UnreadCountOut
from kivendi.services import blocks as blocks_service
from kivendi.services import chat as chat_service
from kivendi.services import conversations as conversations_service
from kivendi.services import reports as reports_service
from kivendi.storage.client import ObjectStoreBase, UploadFile

router = APIRouter(tags=["conversations"])


# =============================================================================
# Conversation Endpoints
# =============================================================================


@router.post("/ads/{ad_id}/conversations")
def open_conversation(
    ad_id: int,
    response: Response,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Open (or reuse) the viewer's conversation about an ad.

    Returns 201 when a conversation was created, 200 when it already existed.

    Errors:
        E_AD_NOT_FOUND (404), E_SELF_CHAT (400), E_BLOCKED (403),
        E_ACCOUNT_BLOCKED / E_ACCOUNT_UNVERIFIED (403)
    """
    result = conversations_service.open_conversation(db, ad_id, viewer.user_id)
    response.status_code = 201 if result.created else 200
    return success_response(result.model_dump(mode="json"))


@router.get("/conversations")
def list_conversations(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """List the viewer's conversations, most recent activity first.

    Conversations with a blocked counterpart are omitted.
    """
    conversations = conversations_service.list_conversations(db, viewer.user_id)
    return success_response([c.model_dump(mode="json") for c in conversations])


@router.get("/conversations/unread-count")
def get_unread_count(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    count = conversations_service.total_unread(db, viewer.user_id)
    return success_response(UnreadCountOut(unread_count=count).model_dump(mode="json"))


# =============================================================================
# Message Endpoints
# =============================================================================


@router.get("/conversations/{conversation_id}/messages")
def get_messages(
    conversation_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Full message history, oldest first.

    Errors:
        E_CONVERSATION_NOT_FOUND (404), E_NOT_PARTICIPANT (403)
    """
    messages = conversations_service.get_history(db, conversation_id, viewer.user_id)
    return success_response([m.model_dump(mode="json") for m in messages])


@router.post("/conversations/{conversation_id}/read")
def mark_read(
    conversation_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Mark every message from the other participant as read."""
    result = conversations_service.mark_read(db, conversation_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/conversations/{conversation_id}/images", status_code=201)
def upload_images(
    conversation_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    store: Annotated[ObjectStoreBase, Depends(get_object_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    images: Annotated[list[MultipartFile], File()],
) -> dict:
    """Upload chat images; the returned URLs go into an image frame.

    Errors:
        E_BLOCKED (403), E_INVALID_REQUEST (400), E_INVALID_FILE_TYPE (400),
        E_FILE_TOO_LARGE (400), E_STORAGE_ERROR (500)
    """
    files = [UploadFile(content=f.file.read(), filename=f.filename) for f in images]
    result = chat_service.upload_chat_images(
        db,
        store,
        conversation_id,
        viewer.user_id,
        files,
        max_images=settings.max_images_per_message,
    )
    return success_response(result.model_dump(mode="json"))


# =============================================================================
# Safety Endpoints
# =============================================================================


@router.post("/conversations/{conversation_id}/block")
def block_other_participant(
    conversation_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Block the other participant. Blocking twice is not an error."""
    result = blocks_service.block_in_conversation(db, conversation_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/conversations/{conversation_id}/unblock")
def unblock_other_participant(
    conversation_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Remove the viewer's block on the other participant.

    Errors:
        E_BLOCK_NOT_FOUND (404): The viewer has not blocked them.
    """
    result = blocks_service.unblock_in_conversation(db, conversation_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/conversations/{conversation_id}/block-status")
def get_block_status(
    conversation_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = blocks_service.block_status(db, conversation_id, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.post("/conversations/{conversation_id}/report", status_code=201)
def report_other_participant(
    conversation_id: int,
    body: ReportCreateRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """File a report against the other participant for staff review."""
    result = reports_service.report_from_conversation(db, conversation_id, viewer.user_id, body)
    return success_response(result.model_dump(mode="json"))
