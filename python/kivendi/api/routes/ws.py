"""WebSocket endpoints.

Two sockets per user:

- /ws/conversations/{id}: participant-only chat channel. Inbound frames
  are persisted and fanned out by kivendi.services.chat.handle_frame.
- /ws/notifications: one per user, receives new_message_notification
  frames for conversations the user is not currently viewing.

WebSocket upgrades bypass AuthMiddleware, so each endpoint authenticates
itself before accepting. Rejected upgrades are closed with 1008 (policy
violation) before accept, which clients see as a refused handshake.
A socket that stays silent for ws_idle_timeout_s is closed.
"""

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from kivendi.auth.middleware import authenticate_websocket
from kivendi.config import get_settings
from kivendi.db.session import open_session
from kivendi.errors import ApiError
from kivendi.logging import clear_request_context, get_logger, set_socket_context
from kivendi.realtime.hub import ChatHub, HubClient
from kivendi.services import chat as chat_service

logger = get_logger(__name__)

router = APIRouter(prefix="/ws", tags=["realtime"])

WS_POLICY_VIOLATION = 1008
WS_NORMAL_CLOSURE = 1000


def _authorize(conversation_id: int, user_id: int) -> None:
    with open_session() as db:
        chat_service.authorize_conversation_socket(db, conversation_id, user_id)


async def _receive(websocket: WebSocket, idle_timeout_s: float) -> str | None:
    """Next text frame, or None once the peer is gone or idle."""
    try:
        return await asyncio.wait_for(websocket.receive_text(), timeout=idle_timeout_s)
    except TimeoutError:
        logger.info("ws_idle_timeout")
        await websocket.close(code=WS_NORMAL_CLOSURE)
        return None
    except WebSocketDisconnect:
        return None


@router.websocket("/conversations/{conversation_id}")
async def conversation_socket(websocket: WebSocket, conversation_id: int) -> None:
    try:
        viewer = authenticate_websocket(websocket)
        await run_in_threadpool(_authorize, conversation_id, viewer.user_id)
    except ApiError as e:
        logger.info("ws_conversation_rejected", conversation_id=conversation_id, code=e.code.value)
        await websocket.close(code=WS_POLICY_VIOLATION, reason=e.message)
        return

    set_socket_context(viewer.user_id, conversation_id)
    settings = get_settings()
    app_state = websocket.app.state
    hub: ChatHub = app_state.chat_hub

    await websocket.accept()
    client = HubClient(
        websocket,
        viewer.user_id,
        conversation_id=conversation_id,
        send_timeout_s=settings.ws_send_timeout_s,
        queue_size=settings.ws_send_queue_size,
    )
    await hub.register(conversation_id, client)
    try:
        while not client.closed:
            raw = await _receive(websocket, settings.ws_idle_timeout_s)
            if raw is None:
                break
            await chat_service.handle_frame(
                raw,
                hub=hub,
                client=client,
                conversation_id=conversation_id,
                store=app_state.object_store,
                transport=app_state.push_transport,
                max_images=settings.max_images_per_message,
            )
    finally:
        await hub.unregister(conversation_id, client)
        client.stop()
        clear_request_context()


@router.websocket("/notifications")
async def notification_socket(websocket: WebSocket) -> None:
    try:
        viewer = authenticate_websocket(websocket)
    except ApiError as e:
        await websocket.close(code=WS_POLICY_VIOLATION, reason=e.message)
        return

    set_socket_context(viewer.user_id)
    settings = get_settings()
    hub: ChatHub = websocket.app.state.chat_hub

    await websocket.accept()
    client = HubClient(
        websocket,
        viewer.user_id,
        send_timeout_s=settings.ws_send_timeout_s,
        queue_size=settings.ws_send_queue_size,
    )
    await hub.register_user(viewer.user_id, client)
    try:
        # Inbound frames carry nothing; reading only detects disconnects.
        while not client.closed:
            if await _receive(websocket, settings.ws_idle_timeout_s) is None:
                break
    finally:
        await hub.unregister_user(viewer.user_id, client)
        client.stop()
        clear_request_context()
