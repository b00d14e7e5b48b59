"""
Tests for the SQLAlchemy summary store
"""
from datetime import date, datetime, timezone

import pytest

from hotel_ads_funnel.errors import PersistenceError
from hotel_ads_funnel.services import periods
from hotel_ads_funnel.services.aggregator import PeriodTotals, aggregate_campaigns
from hotel_ads_funnel.services.funnel import CampaignRow, FunnelMetrics


def rows(spend=100.0, reservations=2, value=900.0):
    return [CampaignRow("c1", "Belmonte - Search", spend=spend, impressions=1000, clicks=40,
                        funnel=FunnelMetrics(reservations=reservations, reservation_value=value))]


class TestClients:
    def test_add_and_get(self, store, client):
        loaded = store.get_client(client.id)
        assert loaded.name == "Hotel Belmonte"
        assert loaded.api_status == "valid"
        assert loaded.has_platform("meta")
        assert loaded.has_platform("google")
        assert not loaded.has_platform("tiktok")

    def test_google_needs_enabled_flag(self, store):
        hotel = store.add_client("Havet", ad_account_id="1", google_ads_customer_id="123-456-7890")
        assert hotel.has_platform("meta")
        assert not hotel.has_platform("google")

    def test_list_filters_by_name(self, store, client):
        store.add_client("Havet Hotel Resort", ad_account_id="2")
        assert [c.name for c in store.list_clients()] == ["Havet Hotel Resort", "Hotel Belmonte"]
        assert [c.name for c in store.list_clients("belmonte")] == ["Hotel Belmonte"]
        assert store.list_clients("nobody") == []

    def test_constraint_violation_is_wrapped(self, store):
        with pytest.raises(PersistenceError) as exc:
            store.add_client(None)
        assert exc.value.original is not None


class TestSummaries:
    def test_upsert_is_idempotent_on_natural_key(self, store, client, today):
        period = periods.current_month(today)
        store.upsert_summary(client.id, "meta", period, aggregate_campaigns(rows(spend=100)), rows(spend=100))
        store.upsert_summary(client.id, "meta", period, aggregate_campaigns(rows(spend=150)), rows(spend=150))

        summaries = store.list_summaries(client.id)
        assert len(summaries) == 1
        summary = summaries[0]
        assert summary.total_spend == 150
        assert summary.summary_date == date(2025, 10, 1)
        assert summary.period_end == today
        assert summary.summary_type == "monthly"
        assert summary.reservations == 2
        assert summary.roas == pytest.approx(6.0)
        assert summary.campaigns()[0].spend == 150

    def test_platforms_are_separate_rows(self, store, client, today):
        period = periods.current_month(today)
        store.upsert_summary(client.id, "meta", period, PeriodTotals(spend=1))
        store.upsert_summary(client.id, "google", period, PeriodTotals(spend=2))
        assert {s.platform for s in store.list_summaries(client.id)} == {"meta", "google"}
        assert store.get_summary(client.id, "google", "monthly", date(2025, 10, 1)).total_spend == 2

    def test_totals_round_trip(self, store, client, today):
        totals = aggregate_campaigns(rows())
        summary = store.upsert_summary(client.id, "meta", periods.current_month(today), totals)
        assert store.get_summary(client.id, "meta", "monthly", summary.summary_date).totals() == totals

    def test_list_newest_first_and_filtered(self, store, client, today):
        for week in periods.recent_weeks(3, today):
            store.upsert_summary(client.id, "meta", week, PeriodTotals())
        store.upsert_summary(client.id, "meta", periods.current_month(today), PeriodTotals())

        weekly = store.list_summaries(client.id, summary_type="weekly")
        assert [s.summary_date for s in weekly] == [date(2025, 10, 6), date(2025, 9, 29), date(2025, 9, 22)]
        assert len(store.list_summaries(client.id, platform="meta")) == 4
        assert store.list_summaries(client.id, platform="google") == []


class TestCaches:
    def test_put_and_get(self, store, client):
        store.put_cache(client.id, "monthly", "2025-10", {"stats": {"spend": 1}})
        cached = store.get_cache(client.id, "monthly", "2025-10")
        assert cached.cache_data == {"stats": {"spend": 1}}
        assert store.get_cache(client.id, "weekly", "2025-10") is None
        assert store.get_cache(client.id, "monthly", "2025-10", platform="google") is None

    def test_put_overwrites(self, store, client):
        first = datetime(2025, 10, 16, 8, 0, tzinfo=timezone.utc)
        second = datetime(2025, 10, 16, 9, 0, tzinfo=timezone.utc)
        store.put_cache(client.id, "weekly", "2025-W42", {"v": 1}, last_updated=first)
        store.put_cache(client.id, "weekly", "2025-W42", {"v": 2}, last_updated=second)

        cached = store.get_cache(client.id, "weekly", "2025-W42")
        assert cached.cache_data == {"v": 2}
        assert cached.last_updated.replace(tzinfo=None) == second.replace(tzinfo=None)

    def test_latest_cache(self, store, client):
        store.put_cache(client.id, "monthly", "2025-09", {"v": "old"},
                        last_updated=datetime(2025, 9, 30, tzinfo=timezone.utc))
        store.put_cache(client.id, "monthly", "2025-10", {"v": "new"},
                        last_updated=datetime(2025, 10, 16, tzinfo=timezone.utc))
        assert store.latest_cache(client.id, "monthly").period_id == "2025-10"
        assert store.latest_cache(client.id, "weekly") is None


class TestSystemSettings:
    def test_set_get_update(self, store):
        assert store.get_setting("google_ads_manager_refresh_token") is None
        store.set_setting("google_ads_manager_refresh_token", "r1")
        store.set_setting("google_ads_manager_refresh_token", "r2")
        assert store.get_setting("google_ads_manager_refresh_token") == "r2"
        assert store.get_settings() == {"google_ads_manager_refresh_token": "r2"}
