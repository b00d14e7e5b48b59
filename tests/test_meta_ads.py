"""
Tests for the Meta Ads connector (HTTP mocked)
"""
from datetime import date

import pytest

from hotel_ads_funnel.connectors.meta_ads import MetaAdsConnector
from hotel_ads_funnel.errors import AdsApiError, AuthExpiredError, ConfigError, RateLimitError
from hotel_ads_funnel.retry import RetryPolicy
from hotel_ads_funnel.services import periods

FAST = RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=0)

INSIGHT = {
    "campaign_id": "120210",
    "campaign_name": "Belmonte - Remarketing",
    "spend": "250.40",
    "impressions": "12000",
    "clicks": "300",
    "actions": [
        {"action_type": "link_click", "value": "300"},
        {"action_type": "offsite_conversion.fb_pixel_initiate_checkout", "value": "20"},
        {"action_type": "offsite_conversion.fb_pixel_add_to_cart", "value": "10"},
        {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "3"},
        {"action_type": "purchase", "value": "3"},
    ],
    "action_values": [{"action_type": "purchase", "value": "2400.00"}],
}


@pytest.fixture
def connector(http_session):
    return MetaAdsConnector("meta-token", "438600948208231", session=http_session, policy=FAST)


class TestCredentials:
    def test_act_prefix_added(self, connector):
        assert connector.ad_account_id == "act_438600948208231"

    def test_act_prefix_kept(self, http_session):
        connector = MetaAdsConnector("t", "act_1", session=http_session)
        assert connector.ad_account_id == "act_1"

    def test_missing_token(self, http_session):
        with pytest.raises(ConfigError) as exc:
            MetaAdsConnector(None, "act_1", session=http_session)
        assert exc.value.missing == ["META_ACCESS_TOKEN"]


class TestInsights:
    def test_follows_paging(self, connector, http_session, fake_response):
        http_session.get.side_effect = [
            fake_response(payload={"data": [INSIGHT], "paging": {"next": "https://graph.facebook.com/next-page"}}),
            fake_response(payload={"data": [dict(INSIGHT, campaign_id="120211")]}),
        ]
        rows = connector.get_campaign_insights("2025-10-01", "2025-10-16")

        assert [r["campaign_id"] for r in rows] == ["120210", "120211"]
        first_url = http_session.get.call_args_list[0].args[0]
        first_params = http_session.get.call_args_list[0].kwargs["params"]
        assert first_url.endswith("/act_438600948208231/insights")
        assert first_params["access_token"] == "meta-token"
        assert first_params["level"] == "campaign"
        assert '"since": "2025-10-01"' in first_params["time_range"]
        assert http_session.get.call_args_list[1].args[0] == "https://graph.facebook.com/next-page"

    def test_campaign_rows_are_parsed(self, connector, http_session, fake_response, today):
        http_session.get.return_value = fake_response(payload={"data": [INSIGHT]})
        rows = connector.get_campaign_rows(periods.current_month(today))

        assert len(rows) == 1
        row = rows[0]
        assert row.spend == 250.40
        assert row.impressions == 12000
        assert row.funnel.booking_step_1 == 20
        assert row.funnel.booking_step_2 == 10
        assert row.funnel.reservations == 6
        assert row.funnel.reservation_value == 2400.0

    def test_empty_account(self, connector, http_session, fake_response):
        http_session.get.return_value = fake_response(payload={"data": []})
        assert connector.get_campaign_insights("2025-10-01", "2025-10-16") == []


class TestErrors:
    def test_http_429_is_retried(self, connector, http_session, fake_response):
        http_session.get.side_effect = [
            fake_response(429, {"error": {"message": "Too many calls"}}),
            fake_response(payload={"data": [INSIGHT]}),
        ]
        rows = connector.get_campaign_insights("2025-10-01", "2025-10-16")
        assert len(rows) == 1
        assert http_session.get.call_count == 2

    def test_throttle_code_gives_up(self, connector, http_session, fake_response):
        http_session.get.return_value = fake_response(400, {"error": {"message": "User request limit reached", "code": 17}})
        with pytest.raises(RateLimitError) as exc:
            connector.get_campaign_insights("2025-10-01", "2025-10-16")
        assert exc.value.code == "17"
        assert http_session.get.call_count == 3

    def test_expired_token(self, connector, http_session, fake_response):
        http_session.get.return_value = fake_response(
            400, {"error": {"message": "Error validating access token", "code": 190}}
        )
        with pytest.raises(AuthExpiredError):
            connector.get_account_info()
        assert http_session.get.call_count == 1

    def test_other_errors(self, connector, http_session, fake_response):
        http_session.get.return_value = fake_response(400, {"error": {"message": "Invalid field", "code": 100}})
        with pytest.raises(AdsApiError) as exc:
            connector.get_account_info()
        assert not isinstance(exc.value, (RateLimitError, AuthExpiredError))
        assert exc.value.status_code == 400
        assert "[meta] HTTP 400" in str(exc.value)

    def test_non_json_error_body(self, connector, http_session, fake_response):
        http_session.get.return_value = fake_response(502, None, text="Bad Gateway")
        with pytest.raises(AdsApiError, match="Bad Gateway"):
            connector.get_account_info()


class TestMalformedBodies:
    def test_null_data_is_empty(self, connector, http_session, fake_response):
        http_session.get.return_value = fake_response(payload={"data": None, "paging": None})
        assert connector.get_campaign_insights("2025-10-01", "2025-10-16") == []

    def test_non_object_body_is_empty(self, connector, http_session, fake_response):
        http_session.get.return_value = fake_response(payload=["unexpected"])
        assert connector.get_campaign_insights("2025-10-01", "2025-10-16") == []

    def test_error_body_without_error_object(self, connector, http_session, fake_response):
        http_session.get.return_value = fake_response(500, ["oops"])
        with pytest.raises(AdsApiError) as exc:
            connector.get_account_info()
        assert exc.value.status_code == 500
