"""Notification inbox and preference routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from kivendi.api.deps import get_db
from kivendi.auth.middleware import Viewer, get_viewer
from kivendi.responses import success_response
from kivendi.schemas.conversation import UnreadCountOut
from kivendi.schemas.notification import NotificationPreferencesUpdate
from kivendi.services import notifications as notifications_service

router = APIRouter(tags=["notifications"])


@router.get("/notifications")
def list_notifications(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
    page: int = Query(default=1, ge=1),
    limit: int = Query(
        default=notifications_service.DEFAULT_LIMIT, ge=1, le=notifications_service.MAX_LIMIT
    ),
    unread_only: bool = Query(default=False),
) -> dict:
    result = notifications_service.list_notifications(
        db, viewer.user_id, page=page, limit=limit, unread_only=unread_only
    )
    return success_response(result.model_dump(mode="json"))


@router.get("/notifications/unread-count")
def get_unread_count(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    count = notifications_service.unread_count(db, viewer.user_id)
    return success_response(UnreadCountOut(unread_count=count).model_dump(mode="json"))


@router.post("/notifications/read-all")
def mark_all_read(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    marked = notifications_service.mark_all_read(db, viewer.user_id)
    return success_response({"marked": marked})


@router.post("/notifications/{notification_id}/read")
def mark_read(
    notification_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Errors: E_NOTIFICATION_NOT_FOUND (404) for unknown or foreign ids."""
    result = notifications_service.mark_notification_read(db, viewer.user_id, notification_id)
    return success_response(result.model_dump(mode="json"))


@router.delete("/notifications/{notification_id}", status_code=204)
def delete_notification(
    notification_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    notifications_service.delete_notification(db, viewer.user_id, notification_id)
    return Response(status_code=204)


# =============================================================================
# Preferences
# =============================================================================


@router.get("/notifications/preferences")
def get_preferences(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Stored flags, or all-enabled defaults when none were saved."""
    result = notifications_service.get_preferences(db, viewer.user_id)
    return success_response(result.model_dump(mode="json"))


@router.put("/notifications/preferences")
def update_preferences(
    body: NotificationPreferencesUpdate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    result = notifications_service.update_preferences(db, viewer.user_id, body)
    return success_response(result.model_dump(mode="json"))
