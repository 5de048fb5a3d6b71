"""Tests for the boost expiration job.

Tests cover:
- Ended boosts are deactivated and their ads lose is_boosted
- Live boosts and their ads are untouched
- Drifted flags are repaired in both directions
- The job is idempotent
- Boosted listings never show expired boosts, even before the job runs
"""

from datetime import timedelta

from kivendi.db.models import Ad, AdBoost, utcnow
from kivendi.services.boosts import expire_boosts
from kivendi.tasks.expire_boosts import run_boost_expiry
from tests.factories import create_ad, create_boost, create_offer, create_user
from tests.helpers import data


class TestExpireBoosts:
    """Tests for expire_boosts()."""

    def test_expires_ended_boost_and_keeps_live_one(self, db_session):
        owner = create_user(db_session)
        offer = create_offer(db_session)
        ended_ad = create_ad(db_session, owner, title="Ancienne annonce")
        live_ad = create_ad(db_session, owner, title="Annonce du jour")
        ended = create_boost(db_session, ended_ad, offer, days_left=-0.01)
        live = create_boost(db_session, live_ad, offer, days_left=2)

        result = expire_boosts(db_session)

        assert result.deactivated_boosts == 1
        assert result.cleared_ads == 1
        assert result.restored_ads == 0
        assert db_session.get(AdBoost, ended.id).is_active is False
        assert db_session.get(Ad, ended_ad.id).is_boosted is False
        assert db_session.get(AdBoost, live.id).is_active is True
        assert db_session.get(Ad, live_ad.id).is_boosted is True

    def test_second_run_changes_nothing(self, db_session):
        owner = create_user(db_session)
        ad = create_ad(db_session, owner)
        create_boost(db_session, ad, create_offer(db_session), days_left=-1)

        expire_boosts(db_session)
        again = expire_boosts(db_session)

        assert again.deactivated_boosts == 0
        assert again.cleared_ads == 0
        assert again.restored_ads == 0

    def test_clears_flag_without_any_boost(self, db_session):
        owner = create_user(db_session)
        ad = create_ad(db_session, owner, is_boosted=True)

        result = expire_boosts(db_session)

        assert result.cleared_ads == 1
        assert db_session.get(Ad, ad.id).is_boosted is False

    def test_restores_missing_flag(self, db_session):
        owner = create_user(db_session)
        ad = create_ad(db_session, owner)
        create_boost(db_session, ad, create_offer(db_session), days_left=3, flag_ad=False)

        result = expire_boosts(db_session)

        assert result.restored_ads == 1
        assert db_session.get(Ad, ad.id).is_boosted is True

    def test_explicit_clock(self, db_session):
        owner = create_user(db_session)
        ad = create_ad(db_session, owner)
        boost = create_boost(db_session, ad, create_offer(db_session), days_left=1)

        result = expire_boosts(db_session, now=utcnow() + timedelta(days=2))

        assert result.deactivated_boosts == 1
        assert db_session.get(AdBoost, boost.id).is_active is False

    def test_task_entry_runs_with_own_session(self, db_session):
        owner = create_user(db_session)
        ad = create_ad(db_session, owner)
        create_boost(db_session, ad, create_offer(db_session), days_left=-1)

        result = run_boost_expiry(task_id="test-task")

        assert result == {"deactivated_boosts": 1, "cleared_ads": 1, "restored_ads": 0}
        db_session.expire_all()
        assert db_session.get(Ad, ad.id).is_boosted is False


class TestBoostedListing:
    """Listings filter by end_date, not by the stored flags."""

    def test_expired_boost_hidden_before_job_runs(self, client, db_session):
        owner = create_user(db_session)
        offer = create_offer(db_session)
        expired_ad = create_ad(db_session, owner, title="Expirée")
        live_ad = create_ad(db_session, owner, title="En cours")
        create_boost(db_session, expired_ad, offer, days_left=-1)
        create_boost(db_session, live_ad, offer, days_left=1)

        page = data(client.get("/api/v1/boosted-ads"))

        assert [a["id"] for a in page["ads"]] == [live_ad.id]
        assert page["pagination"]["total_ads"] == 1

        status = data(client.get(f"/api/v1/ads/{expired_ad.id}/boost-status"))
        assert status["is_boosted"] is False

    def test_boosted_ads_ordered_by_priority(self, client, db_session):
        owner = create_user(db_session)
        basic = create_offer(db_session, name="Basique", position_priority=1)
        gold = create_offer(db_session, name="Or", position_priority=5)
        basic_ad = create_ad(db_session, owner, title="Basique")
        gold_ad = create_ad(db_session, owner, title="Or")
        create_boost(db_session, basic_ad, basic)
        create_boost(db_session, gold_ad, gold)

        page = data(client.get("/api/v1/boosted-ads?limit=1"))

        assert [a["id"] for a in page["ads"]] == [gold_ad.id]
        assert page["pagination"] == {
            "current_page": 1,
            "total_pages": 2,
            "total_ads": 2,
            "limit": 1,
        }

    def test_boosted_ads_hide_unvalidated(self, client, db_session):
        owner = create_user(db_session)
        ad = create_ad(db_session, owner, is_validated=False)
        create_boost(db_session, ad, create_offer(db_session))

        page = data(client.get("/api/v1/boosted-ads"))

        assert page["ads"] == []

    def test_boosted_ads_limit_out_of_range(self, client):
        response = client.get("/api/v1/boosted-ads?limit=0")
        assert response.status_code == 400
