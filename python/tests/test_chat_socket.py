"""End-to-end tests for the WebSocket endpoints.

Tests cover:
- Upgrade authentication and participant checks (close 1008)
- Live exchange between two participants
- Notification socket signals for new messages
- A block isolates the pair on every surface: REST, socket and list
- Pushes follow device tokens to their current owner
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from starlette.websockets import WebSocketDisconnect

from kivendi.db.models import Message
from kivendi.services.notifications import send_push
from tests.factories import create_ad, create_conversation, create_message, create_user
from tests.helpers import auth_headers, data, error_code, staff_token, user_token


def conversation_url(conversation_id: int, user_id: int) -> str:
    return f"/ws/conversations/{conversation_id}?token={user_token(user_id)}"


def notifications_url(user_id: int) -> str:
    return f"/ws/notifications?token={user_token(user_id)}"


@pytest.fixture
def seller(db_session):
    return create_user(db_session, first_name="Koffi", last_name="Mensah")


@pytest.fixture
def buyer(db_session):
    return create_user(db_session, first_name="Awa", last_name="Diallo")


@pytest.fixture
def ad(db_session, seller):
    return create_ad(db_session, seller, title="Machine à laver")


@pytest.fixture
def conversation(db_session, ad, buyer):
    return create_conversation(db_session, ad, buyer)


# =============================================================================
# Upgrade authentication
# =============================================================================


class TestSocketAuthentication:
    """Rejected upgrades are closed with 1008 before accept."""

    def test_missing_token(self, client, conversation):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/conversations/{conversation.id}"):
                pass
        assert exc_info.value.code == 1008

    def test_invalid_token(self, client, conversation):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/conversations/{conversation.id}?token=garbage"):
                pass
        assert exc_info.value.code == 1008

    def test_staff_token_refused(self, client, conversation):
        url = f"/ws/conversations/{conversation.id}?token={staff_token(1)}"
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(url):
                pass
        assert exc_info.value.code == 1008

    def test_non_participant(self, client, db_session, conversation):
        outsider = create_user(db_session)
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(conversation_url(conversation.id, outsider.id)):
                pass
        assert exc_info.value.code == 1008

    def test_unknown_conversation(self, client, buyer):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(conversation_url(987654, buyer.id)):
                pass
        assert exc_info.value.code == 1008

    def test_bearer_header_accepted(self, client, conversation, buyer):
        with client.websocket_connect(
            f"/ws/conversations/{conversation.id}", headers=auth_headers(buyer.id)
        ) as ws:
            ws.send_json({"type": "text", "text": "Bonjour"})
            assert ws.receive_json()["text"] == "Bonjour"

    def test_notification_socket_requires_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications"):
                pass
        assert exc_info.value.code == 1008


# =============================================================================
# Live exchange
# =============================================================================


class TestLiveExchange:
    """Two participants on the same conversation socket."""

    def test_both_participants_receive_message(self, client, conversation, buyer, seller):
        with client.websocket_connect(conversation_url(conversation.id, seller.id)) as seller_ws:
            with client.websocket_connect(conversation_url(conversation.id, buyer.id)) as buyer_ws:
                buyer_ws.send_json({"type": "text", "text": "Toujours disponible ?"})

                echoed = buyer_ws.receive_json()
                delivered = seller_ws.receive_json()

        assert echoed == delivered
        assert delivered["sender_id"] == buyer.id
        assert delivered["conversation_id"] == conversation.id
        assert delivered["type"] == "text"
        assert delivered["is_read"] is False

    def test_invalid_frame_gets_error_frame(self, client, conversation, buyer):
        with client.websocket_connect(conversation_url(conversation.id, buyer.id)) as ws:
            ws.send_json({"type": "offer", "offer_amount": -5})
            reply = ws.receive_json()

        assert reply["type"] == "error"
        assert reply["code"] == "E_INVALID_MESSAGE"

    def test_notification_socket_signals_new_message(self, client, conversation, buyer, seller):
        with client.websocket_connect(notifications_url(seller.id)) as inbox:
            with client.websocket_connect(conversation_url(conversation.id, buyer.id)) as ws:
                ws.send_json({"type": "text", "text": "Bonsoir"})
                ws.receive_json()
                signal = inbox.receive_json()

        assert signal == {"type": "new_message_notification", "conversation_id": conversation.id}

    def test_message_persisted_for_history(self, client, conversation, buyer, seller):
        with client.websocket_connect(conversation_url(conversation.id, buyer.id)) as ws:
            ws.send_json({"type": "text", "text": "Je passe demain"})
            ws.receive_json()

        history = data(
            client.get(
                f"/api/v1/conversations/{conversation.id}/messages",
                headers=auth_headers(seller.id),
            )
        )
        assert [m["text"] for m in history] == ["Je passe demain"]


# =============================================================================
# Blocking isolates the pair
# =============================================================================


class TestBlockIsolation:
    """After a block, the pair cannot reach each other anywhere."""

    def test_block_cuts_every_channel(self, client, db_session, ad, conversation, buyer, seller):
        create_message(db_session, conversation, buyer, text="Bonjour")

        with client.websocket_connect(conversation_url(conversation.id, buyer.id)) as buyer_ws:
            blocked = client.post(
                f"/api/v1/conversations/{conversation.id}/block", headers=auth_headers(seller.id)
            )
            assert data(blocked) == {"status": "blocked", "blocked_user_id": buyer.id}

            # The blocked frame produces nothing, so the error reply comes first.
            buyer_ws.send_json({"type": "text", "text": "Pourquoi ?"})
            buyer_ws.send_text("not json")
            reply = buyer_ws.receive_json()
            assert reply["type"] == "error"

        count = db_session.scalar(
            select(func.count())
            .select_from(Message)
            .where(Message.conversation_id == conversation.id)
        )
        assert count == 1

        reopen = client.post(f"/api/v1/ads/{ad.id}/conversations", headers=auth_headers(buyer.id))
        assert reopen.status_code == 403
        assert error_code(reopen) == "E_BLOCKED"

        for user in (buyer, seller):
            listed = data(client.get("/api/v1/conversations", headers=auth_headers(user.id)))
            assert listed == []

        status = data(
            client.get(
                f"/api/v1/conversations/{conversation.id}/block-status",
                headers=auth_headers(buyer.id),
            )
        )
        assert status == {
            "conversation_id": conversation.id,
            "is_blocked": True,
            "blocked_by_me": False,
        }


# =============================================================================
# Push targeting
# =============================================================================


class TestPushTargeting:
    """Device tokens follow their latest registration."""

    def test_reassigned_token_follows_new_owner(self, client, db_session, push_transport):
        first_owner = create_user(db_session)
        second_owner = create_user(db_session)

        for owner in (first_owner, second_owner):
            response = client.post(
                "/api/v1/device-tokens",
                json={"token": "shared-tablet", "device_type": "android"},
                headers=auth_headers(owner.id),
            )
            assert response.status_code == 201

        stale = send_push(db_session, push_transport, first_owner.id, "chat_message", "t", "b")
        current = send_push(db_session, push_transport, second_owner.id, "chat_message", "t", "b")

        assert stale.skipped == "no_tokens"
        assert current.sent == 1
        assert push_transport.tokens_sent() == ["shared-tablet"]

    def test_chat_push_reaches_recipient_device(
        self, app, db_session, push_transport, conversation, buyer, seller
    ):
        with TestClient(app) as local_client:
            local_client.post(
                "/api/v1/device-tokens",
                json={"token": "seller-phone", "device_type": "ios"},
                headers=auth_headers(seller.id),
            )
            url = conversation_url(conversation.id, buyer.id)
            with local_client.websocket_connect(url) as ws:
                ws.send_json({"type": "text", "text": "Prix négociable ?"})
                ws.receive_json()
        # Lifespan shutdown drains detached pushes.

        [(token, push)] = push_transport.sent
        assert token == "seller-phone"
        assert push.body == "Awa Diallo: Prix négociable ?"
        assert push.data["ad_id"] == str(conversation.ad_id)
