"""Push device token registration."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from kivendi.api.deps import get_db
from kivendi.auth.middleware import Viewer, get_viewer
from kivendi.responses import success_response
from kivendi.schemas.notification import DeviceTokenDeleteRequest, DeviceTokenRegisterRequest
from kivendi.services import device_tokens as device_tokens_service

router = APIRouter(tags=["notifications"])


@router.post("/device-tokens", status_code=201)
def register_device_token(
    body: DeviceTokenRegisterRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """Register a device for push. A token held by another user moves to the viewer."""
    result = device_tokens_service.register_device_token(
        db, viewer.user_id, body.token, body.device_type
    )
    return success_response(result.model_dump(mode="json"))


@router.delete("/device-tokens", status_code=204)
def unregister_device_token(
    body: DeviceTokenDeleteRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    db: Annotated[Session, Depends(get_db)],
) -> Response:
    device_tokens_service.unregister_device_token(db, viewer.user_id, body.token)
    return Response(status_code=204)
