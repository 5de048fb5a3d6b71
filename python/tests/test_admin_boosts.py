"""Tests for staff boost management.

Tests cover:
- Granting a boost without payment (audit fields, notification, push)
- Grant refusals: unvalidated ad, already boosted, unknown ad or offer
- Listing active boosts
- Deactivation and the ad's is_boosted flag
- Capability gating
"""

import pytest
from sqlalchemy import select

from kivendi.db.models import Ad, AdBoost, Notification
from tests.factories import (
    create_ad,
    create_admin,
    create_boost,
    create_device_token,
    create_offer,
    create_user,
)
from tests.helpers import auth_headers, data, error_code, staff_headers


@pytest.fixture
def admin_headers(db_session):
    return staff_headers(create_admin(db_session).id)


@pytest.fixture
def owner(db_session):
    return create_user(db_session, first_name="Koffi", last_name="Mensah")


def grant(client, headers, ad_id: int, offer_id: int, reason: str | None = "Partenaire"):
    return client.post(
        "/api/v1/admin/boosts",
        json={"ad_id": ad_id, "boost_offer_id": offer_id, "reason": reason},
        headers=headers,
    )


class TestGrantBoost:
    """Tests for POST /admin/boosts."""

    def test_grant(self, client, db_session, admin_headers, owner, push_transport):
        create_device_token(db_session, owner, "owner-phone")
        ad = create_ad(db_session, owner, title="Canapé")
        offer = create_offer(db_session, name="Gold", duration_days=14)

        response = grant(client, admin_headers, ad.id, offer.id)

        assert response.status_code == 201
        body = data(response)
        assert body["ad_id"] == ad.id

        db_session.expire_all()
        boost = db_session.get(AdBoost, body["boost_id"])
        assert boost.payment_status == "admin_granted"
        assert boost.payment_method == "admin"
        assert boost.amount_paid == 0
        assert boost.transaction_id.startswith("ADMIN_GRANT_")
        assert (boost.end_date - boost.start_date).days == 14
        assert db_session.get(Ad, ad.id).is_boosted is True

        notification = db_session.scalars(
            select(Notification).where(Notification.user_id == owner.id)
        ).one()
        assert notification.type == "boost_success"
        assert notification.data["boost_name"] == "Gold"
        assert push_transport.tokens_sent() == ["owner-phone"]

    def test_inactive_offer_can_be_granted(self, client, db_session, admin_headers, owner):
        ad = create_ad(db_session, owner)
        offer = create_offer(db_session, is_active=False)

        response = grant(client, admin_headers, ad.id, offer.id, reason=None)

        assert response.status_code == 201

    def test_already_boosted(self, client, db_session, admin_headers, owner):
        ad = create_ad(db_session, owner)
        offer = create_offer(db_session)
        create_boost(db_session, ad, offer)

        response = grant(client, admin_headers, ad.id, offer.id)

        assert response.status_code == 409
        assert error_code(response) == "E_ALREADY_BOOSTED"

    def test_unvalidated_ad(self, client, db_session, admin_headers, owner):
        ad = create_ad(db_session, owner, is_validated=False)

        response = grant(client, admin_headers, ad.id, create_offer(db_session).id)

        assert response.status_code == 400
        assert error_code(response) == "E_AD_NOT_VALIDATED"

    def test_unknown_offer(self, client, db_session, admin_headers, owner):
        ad = create_ad(db_session, owner)

        response = grant(client, admin_headers, ad.id, 999999)

        assert response.status_code == 404
        assert error_code(response) == "E_OFFER_NOT_FOUND"

    def test_granted_boost_in_owner_history(self, client, db_session, admin_headers, owner):
        ad = create_ad(db_session, owner)
        grant(client, admin_headers, ad.id, create_offer(db_session).id)

        history = data(client.get("/api/v1/me/boosts", headers=auth_headers(owner.id)))

        assert [h["payment_status"] for h in history] == ["admin_granted"]


class TestActiveBoosts:
    """Tests for GET /admin/boosts."""

    def test_lists_only_live_boosts(self, client, db_session, admin_headers, owner):
        offer = create_offer(db_session, name="Silver")
        soon = create_boost(db_session, create_ad(db_session, owner), offer, days_left=1)
        later = create_boost(db_session, create_ad(db_session, owner), offer, days_left=6)
        create_boost(db_session, create_ad(db_session, owner), offer, days_left=-1)
        create_boost(db_session, create_ad(db_session, owner), offer, is_active=False)

        listed = data(client.get("/api/v1/admin/boosts", headers=admin_headers))

        assert [b["id"] for b in listed] == [soon.id, later.id]
        assert listed[0]["user_name"] == "Koffi Mensah"
        assert listed[0]["offer_name"] == "Silver"


class TestDeactivateBoost:
    """Tests for POST /admin/boosts/{id}/deactivate."""

    def test_clears_flag(self, client, db_session, admin_headers, owner):
        ad = create_ad(db_session, owner)
        boost = create_boost(db_session, ad, create_offer(db_session))

        response = client.post(f"/api/v1/admin/boosts/{boost.id}/deactivate", headers=admin_headers)

        assert data(response) == {
            "id": boost.id,
            "ad_id": ad.id,
            "is_active": False,
            "ad_is_boosted": False,
        }

    def test_keeps_flag_with_other_active_boost(self, client, db_session, admin_headers, owner):
        ad = create_ad(db_session, owner)
        offer = create_offer(db_session)
        first = create_boost(db_session, ad, offer)
        create_boost(db_session, ad, offer, days_left=10)

        response = client.post(f"/api/v1/admin/boosts/{first.id}/deactivate", headers=admin_headers)

        assert data(response)["ad_is_boosted"] is True

    def test_unknown_boost(self, client, admin_headers):
        response = client.post("/api/v1/admin/boosts/31337/deactivate", headers=admin_headers)

        assert response.status_code == 404
        assert error_code(response) == "E_BOOST_NOT_FOUND"


class TestBoostAdminAccess:
    """Tests for who may manage boosts."""

    def test_moderator_may_grant(self, client, db_session, owner):
        moderator = create_admin(db_session, role="moderator")
        ad = create_ad(db_session, owner)

        response = grant(
            client, staff_headers(moderator.id, "moderator"), ad.id, create_offer(db_session).id
        )

        assert response.status_code == 201

    def test_user_token_forbidden(self, client, owner):
        response = client.get("/api/v1/admin/boosts", headers=auth_headers(owner.id))

        assert response.status_code == 403
