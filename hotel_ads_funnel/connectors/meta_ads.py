"""
Meta (Facebook) Ads Connector

Pulls campaign-level spend, delivery and conversion actions from the Graph
API insights endpoint for one client's ad account.
"""

import json
import logging
from typing import Optional

import requests

from ..errors import AdsApiError, AuthExpiredError, ConfigError, RateLimitError
from ..retry import RetryPolicy, execute
from ..services.funnel import CampaignRow, enhance_campaigns
from ..services.periods import Period

logger = logging.getLogger(__name__)

PLATFORM = "meta"

# Graph API throttling codes (app, user, page and business-use-case limits)
RATE_LIMIT_CODES = {4, 17, 32, 613} | set(range(80000, 80015))
EXPIRED_TOKEN_CODE = 190

INSIGHT_FIELDS = [
    "campaign_id",
    "campaign_name",
    "spend",
    "impressions",
    "clicks",
    "cpc",
    "ctr",
    "actions",
    "action_values",
]


class MetaAdsConnector:
    """Connector for the Meta Marketing API."""

    API_VERSION = "v18.0"
    GRAPH_URL = "https://graph.facebook.com"

    def __init__(
        self,
        access_token: Optional[str],
        ad_account_id: Optional[str],
        api_version: Optional[str] = None,
        session: Optional[requests.Session] = None,
        policy: Optional[RetryPolicy] = None,
        timeout: float = 60,
    ):
        self.access_token = access_token
        self.ad_account_id = ad_account_id
        self.api_version = api_version or self.API_VERSION
        self.session = session or requests.Session()
        self.policy = policy
        self.timeout = timeout

        self._check_credentials()

    @property
    def base_url(self) -> str:
        return f"{self.GRAPH_URL}/{self.api_version}"

    def _check_credentials(self):
        """Verify all required credentials are present."""
        missing = []
        if not self.access_token:
            missing.append("META_ACCESS_TOKEN")
        if not self.ad_account_id:
            missing.append("ad_account_id")

        if missing:
            raise ConfigError(f"Missing credentials: {', '.join(missing)}", missing=missing)

        # Ensure ad_account_id has act_ prefix
        self.ad_account_id = str(self.ad_account_id).strip()
        if not self.ad_account_id.startswith("act_"):
            self.ad_account_id = f"act_{self.ad_account_id}"

    @staticmethod
    def _raise_for_error(response: requests.Response):
        """Map a non-2xx Graph response to the error taxonomy."""
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        error_data = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(error_data, dict):
            error_data = {}

        message = error_data.get("message") or response.text or response.reason
        code = error_data.get("code")
        status = response.status_code

        if status == 429 or code in RATE_LIMIT_CODES:
            raise RateLimitError(message, status_code=status, platform=PLATFORM, code=str(code))
        if status == 401 or code == EXPIRED_TOKEN_CODE:
            raise AuthExpiredError(message, status_code=status, platform=PLATFORM, code=str(code))
        raise AdsApiError(message, status_code=status, platform=PLATFORM,
                          code=str(code) if code is not None else None)

    def _get(self, url: str, params: Optional[dict] = None) -> dict:
        def call():
            response = self.session.get(url, params=params, timeout=self.timeout)
            if response.status_code != 200:
                self._raise_for_error(response)
            payload = response.json()
            if not isinstance(payload, dict):
                logger.warning("Meta returned %s instead of an object, treating as empty",
                               type(payload).__name__)
                return {}
            return payload

        return execute(call, self.policy, description=f"Meta GET {url.split('?')[0]}")

    def _make_request(self, endpoint: str, params: Optional[dict] = None) -> dict:
        """Make authenticated request to Meta API."""
        params = dict(params or {})
        params["access_token"] = self.access_token
        return self._get(f"{self.base_url}/{endpoint}", params)

    def get_account_info(self) -> dict:
        """Get ad account information to verify connection."""
        data = self._make_request(
            self.ad_account_id,
            params={"fields": "name,account_id,currency,timezone_name,account_status"},
        )
        logger.info("Connected to Meta Ads account %s (%s)", data.get("name"), data.get("account_id"))
        return data

    def get_campaign_insights(self, start_date: str, end_date: str) -> list[dict]:
        """
        Get campaign performance insights for the whole range.

        Args:
            start_date: YYYY-MM-DD format
            end_date: YYYY-MM-DD format

        Returns:
            Raw insight rows, one per campaign, with actions/action_values intact
        """
        params = {
            "fields": ",".join(INSIGHT_FIELDS),
            "time_range": json.dumps({"since": start_date, "until": end_date}),
            "level": "campaign",
            "limit": 500,
        }

        all_results = []
        data = self._make_request(f"{self.ad_account_id}/insights", params)

        while True:
            all_results.extend(data.get("data") or [])

            # paging.next already carries the token and cursor
            next_url = (data.get("paging") or {}).get("next")
            if not next_url:
                break
            data = self._get(next_url)

        logger.debug("Fetched %d Meta insight rows for %s..%s", len(all_results), start_date, end_date)
        return all_results

    def get_campaign_rows(self, period: Period) -> list[CampaignRow]:
        """Insights for `period` parsed into campaign rows."""
        return enhance_campaigns(self.get_campaign_insights(period.start_str, period.end_str))
