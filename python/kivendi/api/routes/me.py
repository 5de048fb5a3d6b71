"""Viewer-scoped endpoints.

Lists that belong to the authenticated user but not to one conversation:
their block list and their boost purchase history.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kivendi.api.deps import get_db
from kivendi.auth.middleware import Viewer, get_viewer
from kivendi.responses import success_response
from kivendi.services import blocks as blocks_service
from kivendi.services import boosts as boosts_service

router = APIRouter(tags=["user"])


@router.get("/me/blocked-users")
def list_blocked_users(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Users the viewer has blocked, most recent first."""
    users = blocks_service.list_blocked_users(db, viewer.user_id)
    return success_response([u.model_dump(mode="json") for u in users])


@router.delete("/me/blocked-users/{user_id}")
def unblock_user(
    user_id: int,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Unblock a user from the block list.

    Errors:
        E_BLOCK_NOT_FOUND (404)
    """
    result = blocks_service.unblock_user(db, viewer.user_id, user_id)
    return success_response(result.model_dump(mode="json"))


@router.get("/me/boosts")
def list_my_boosts(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Every boost the viewer has bought or been granted, newest first."""
    history = boosts_service.list_boost_history(db, viewer.user_id)
    return success_response([h.model_dump(mode="json") for h in history])
