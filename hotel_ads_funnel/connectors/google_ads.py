"""
Google Ads Connector

Pulls campaign-level spend and delivery plus per-conversion-action counts
through the Google Ads REST API (GAQL over googleAds:search).
"""

import logging
from typing import Optional

import requests

from ..errors import AdsApiError, AuthExpiredError, ConfigError, RateLimitError
from ..parsing import parse_float_or_0, parse_int_or_0
from ..retry import RetryPolicy, execute
from ..services.funnel import CampaignRow, parse_google_conversions
from ..services.periods import Period

logger = logging.getLogger(__name__)

PLATFORM = "google"
TOKEN_URL = "https://oauth2.googleapis.com/token"

CAMPAIGN_QUERY = """
    SELECT
        campaign.id,
        campaign.name,
        metrics.cost_micros,
        metrics.impressions,
        metrics.clicks
    FROM campaign
    WHERE segments.date BETWEEN '{start}' AND '{end}'
        AND campaign.status != 'REMOVED'
"""

CONVERSION_QUERY = """
    SELECT
        campaign.id,
        segments.conversion_action_name,
        metrics.conversions,
        metrics.conversions_value
    FROM campaign
    WHERE segments.date BETWEEN '{start}' AND '{end}'
        AND campaign.status != 'REMOVED'
"""


def _digits(customer_id: Optional[str]) -> Optional[str]:
    return str(customer_id).replace("-", "").strip() if customer_id else None


def _section(row: dict, name: str) -> dict:
    """row[name] when it is an object; GAQL omits or nulls empty sections."""
    value = row.get(name)
    return value if isinstance(value, dict) else {}


class GoogleAdsConnector:
    """Connector for the Google Ads API."""

    API_VERSION = "v19"

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        developer_token: Optional[str],
        refresh_token: Optional[str],
        customer_id: Optional[str],
        login_customer_id: Optional[str] = None,
        api_version: Optional[str] = None,
        session: Optional[requests.Session] = None,
        policy: Optional[RetryPolicy] = None,
        timeout: float = 60,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.developer_token = developer_token
        self.refresh_token = refresh_token
        self.customer_id = _digits(customer_id)
        self.login_customer_id = _digits(login_customer_id)
        self.api_version = api_version or self.API_VERSION
        self.session = session or requests.Session()
        self.policy = policy
        self.timeout = timeout

        self.access_token: Optional[str] = None
        self._check_credentials()

    @classmethod
    def from_settings(cls, settings, customer_id: str, **kwargs) -> "GoogleAdsConnector":
        return cls(
            client_id=settings.GOOGLE_ADS_CLIENT_ID,
            client_secret=settings.GOOGLE_ADS_CLIENT_SECRET,
            developer_token=settings.GOOGLE_ADS_DEVELOPER_TOKEN,
            refresh_token=settings.GOOGLE_ADS_REFRESH_TOKEN,
            customer_id=customer_id,
            login_customer_id=settings.GOOGLE_ADS_LOGIN_CUSTOMER_ID,
            api_version=settings.GOOGLE_ADS_API_VERSION,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return f"https://googleads.googleapis.com/{self.api_version}"

    def _check_credentials(self):
        """Verify all required credentials are present."""
        missing = []
        if not self.client_id:
            missing.append("GOOGLE_ADS_CLIENT_ID")
        if not self.client_secret:
            missing.append("GOOGLE_ADS_CLIENT_SECRET")
        if not self.developer_token:
            missing.append("GOOGLE_ADS_DEVELOPER_TOKEN")
        if not self.refresh_token:
            missing.append("GOOGLE_ADS_REFRESH_TOKEN")
        if not self.customer_id:
            missing.append("google_ads_customer_id")

        if missing:
            raise ConfigError(f"Missing credentials: {', '.join(missing)}", missing=missing)

    def refresh_access_token(self) -> str:
        """Exchange the refresh token for an access token."""
        def call():
            response = self.session.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": self.refresh_token,
                    "grant_type": "refresh_token",
                },
                timeout=self.timeout,
            )
            if response.status_code != 200:
                try:
                    payload = response.json()
                except ValueError:
                    payload = {}
                error = payload.get("error") if isinstance(payload, dict) else None
                description = payload.get("error_description") if isinstance(payload, dict) else None
                message = f"Token refresh failed: {description or error or response.text}"
                if error == "invalid_grant" or response.status_code == 401:
                    raise AuthExpiredError(message, status_code=response.status_code,
                                           platform=PLATFORM, code=error)
                if response.status_code == 429:
                    raise RateLimitError(message, status_code=429, platform=PLATFORM, code=error)
                raise AdsApiError(message, status_code=response.status_code,
                                  platform=PLATFORM, code=error)
            payload = response.json()
            token = payload.get("access_token") if isinstance(payload, dict) else None
            if not token:
                raise AdsApiError("Token refresh response has no access_token",
                                  status_code=response.status_code, platform=PLATFORM)
            return token

        self.access_token = execute(call, self.policy, description="Google OAuth refresh")
        return self.access_token

    def _headers(self) -> dict:
        if not self.access_token:
            self.refresh_access_token()
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "developer-token": self.developer_token,
            "Content-Type": "application/json",
        }
        if self.login_customer_id:
            headers["login-customer-id"] = self.login_customer_id
        return headers

    @staticmethod
    def _raise_for_error(response: requests.Response):
        """Map a non-2xx Google Ads response to the error taxonomy."""
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        # searchStream wraps errors in a list; search does not
        if isinstance(payload, list):
            payload = payload[0] if payload else {}
        error = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(error, dict):
            error = {}
        status_name = error.get("status")
        message = error.get("message") or response.text or response.reason
        status = response.status_code

        if status == 429 or status_name == "RESOURCE_EXHAUSTED":
            raise RateLimitError(message, status_code=status, platform=PLATFORM, code=status_name)
        if status == 401 or status_name == "UNAUTHENTICATED":
            raise AuthExpiredError(message, status_code=status, platform=PLATFORM, code=status_name)
        raise AdsApiError(message, status_code=status, platform=PLATFORM, code=status_name)

    def search(self, query: str) -> list[dict]:
        """Execute a GAQL query and return all result rows (handles pagination)."""
        url = f"{self.base_url}/customers/{self.customer_id}/googleAds:search"
        all_results = []
        page_token = None

        while True:
            payload = {"query": query}
            if page_token:
                payload["pageToken"] = page_token

            def call():
                response = self.session.post(url, headers=self._headers(), json=payload,
                                             timeout=self.timeout)
                if response.status_code != 200:
                    self._raise_for_error(response)
                data = response.json()
                if not isinstance(data, dict):
                    logger.warning("Google Ads search returned %s instead of an object, treating as empty",
                                   type(data).__name__)
                    return {}
                return data

            data = execute(call, self.policy, description="Google Ads search")
            all_results.extend(row for row in (data.get("results") or []) if isinstance(row, dict))

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return all_results

    def get_campaign_performance(self, start_date: str, end_date: str) -> list[dict]:
        """
        Campaign metrics with their conversion actions attached.

        Returns dicts with campaign_id, campaign_name, spend (currency units,
        converted from micros), impressions, clicks and a `conversions` list.
        """
        campaigns: dict[str, dict] = {}
        for row in self.search(CAMPAIGN_QUERY.format(start=start_date, end=end_date)):
            campaign = _section(row, "campaign")
            metrics = _section(row, "metrics")
            campaign_id = str(campaign.get("id", ""))
            entry = campaigns.setdefault(campaign_id, {
                "campaign_id": campaign_id,
                "campaign_name": campaign.get("name") or "",
                "spend": 0.0,
                "impressions": 0,
                "clicks": 0,
                "conversions": [],
            })
            entry["spend"] += parse_float_or_0(metrics.get("costMicros")) / 1_000_000
            entry["impressions"] += parse_int_or_0(metrics.get("impressions"))
            entry["clicks"] += parse_int_or_0(metrics.get("clicks"))

        for row in self.search(CONVERSION_QUERY.format(start=start_date, end=end_date)):
            campaign_id = str(_section(row, "campaign").get("id", ""))
            if campaign_id not in campaigns:
                continue
            metrics = _section(row, "metrics")
            campaigns[campaign_id]["conversions"].append({
                "conversion_name": _section(row, "segments").get("conversionActionName", ""),
                "conversions": metrics.get("conversions", 0),
                "conversion_value": metrics.get("conversionsValue", 0),
            })

        return list(campaigns.values())

    def get_campaign_rows(self, period: Period) -> list[CampaignRow]:
        """Campaign performance for `period` parsed into campaign rows."""
        rows = []
        for campaign in self.get_campaign_performance(period.start_str, period.end_str):
            rows.append(CampaignRow(
                campaign_id=campaign["campaign_id"],
                campaign_name=campaign["campaign_name"],
                spend=round(campaign["spend"], 2),
                impressions=campaign["impressions"],
                clicks=campaign["clicks"],
                funnel=parse_google_conversions(campaign["conversions"], campaign["campaign_name"]),
            ))
        return rows
