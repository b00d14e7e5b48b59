"""
Collection loop: client x period x platform units of work.

Each unit fetches campaign rows, aggregates them and upserts the summary.
A failing unit, whatever the error, is logged and recorded, and the loop
moves on to the next one; a fixed delay between units keeps request rates
modest.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

import requests

from ..config import Settings
from ..connectors.google_ads import GoogleAdsConnector
from ..connectors.meta_ads import MetaAdsConnector
from ..errors import AdsApiError, AuthExpiredError, ConfigError, PersistenceError
from ..logging_config import unit_context
from ..retry import RetryPolicy
from .aggregator import PeriodTotals, aggregate_campaigns
from .funnel import CampaignRow
from .periods import Period
from .store import Client, SummaryStore

logger = logging.getLogger(__name__)

Fetcher = Callable[[Client, str, Period], list[CampaignRow]]


def make_fetcher(settings: Settings, session=None) -> Fetcher:
    """Build a fetch(client, platform, period) callable over the real connectors."""
    policy = RetryPolicy(max_attempts=settings.RETRY_MAX_ATTEMPTS)
    google_connectors: dict[str, GoogleAdsConnector] = {}

    def fetch(client: Client, platform: str, period: Period) -> list[CampaignRow]:
        if platform == "meta":
            connector = MetaAdsConnector(
                access_token=client.meta_access_token or settings.META_ACCESS_TOKEN,
                ad_account_id=client.ad_account_id,
                api_version=settings.META_API_VERSION,
                session=session,
                policy=policy,
            )
            return connector.get_campaign_rows(period)

        if platform == "google":
            # one connector per customer keeps the access token between periods
            connector = google_connectors.get(client.google_ads_customer_id)
            if connector is None:
                connector = GoogleAdsConnector.from_settings(
                    settings, client.google_ads_customer_id, session=session, policy=policy,
                )
                google_connectors[client.google_ads_customer_id] = connector
            return connector.get_campaign_rows(period)

        raise ConfigError(f"Unknown platform: {platform}")

    return fetch


@dataclass
class UnitResult:
    client_id: str
    client_name: str
    platform: str
    period_id: str
    ok: bool
    totals: Optional[PeriodTotals] = None
    campaigns: list[CampaignRow] = field(default_factory=list)
    error: Optional[str] = None
    needs_reauth: bool = False


@dataclass
class CollectionResult:
    units: list[UnitResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[UnitResult]:
        return [u for u in self.units if u.ok]

    @property
    def failed(self) -> list[UnitResult]:
        return [u for u in self.units if not u.ok]

    @property
    def needs_reauth(self) -> list[UnitResult]:
        return [u for u in self.units if u.needs_reauth]


class Collector:
    """Runs collection units sequentially against the store."""

    def __init__(
        self,
        store: SummaryStore,
        fetch: Fetcher,
        request_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.fetch = fetch
        self.request_delay = request_delay
        self.sleep = sleep

    def collect_unit(self, client: Client, platform: str, period: Period,
                     dry_run: bool = False) -> UnitResult:
        """Fetch, aggregate and (unless dry_run) persist one unit. Raises on failure."""
        campaigns = self.fetch(client, platform, period)
        totals = aggregate_campaigns(campaigns)
        if not dry_run:
            self.store.upsert_summary(client.id, platform, period, totals, campaigns,
                                      data_source=f"{platform}_api")
        return UnitResult(client.id, client.name, platform, period.period_id, ok=True,
                          totals=totals, campaigns=campaigns)

    def collect(
        self,
        clients: Iterable[Client],
        periods: Iterable[Period],
        platforms: Iterable[str] = ("meta", "google"),
        dry_run: bool = False,
    ) -> CollectionResult:
        """Run every unit; failures are logged and recorded, never raised."""
        result = CollectionResult()
        periods = list(periods)
        platforms = list(platforms)
        first = True

        for client in clients:
            for platform in platforms:
                if not client.has_platform(platform):
                    logger.debug("%s has no %s account configured, skipping", client.name, platform)
                    continue
                for period in periods:
                    if not first and self.request_delay > 0:
                        self.sleep(self.request_delay)
                    first = False
                    result.units.append(self._run_unit(client, platform, period, dry_run))

        logger.info("Collection finished: %d ok, %d failed",
                    len(result.succeeded), len(result.failed))
        return result

    def _run_unit(self, client: Client, platform: str, period: Period, dry_run: bool) -> UnitResult:
        label = f"{client.name} / {platform} / {period.period_id}"
        context = unit_context(client.name, platform, period.period_id)

        def failed(error, needs_reauth=False):
            return UnitResult(client.id, client.name, platform, period.period_id, ok=False,
                              error=str(error), needs_reauth=needs_reauth)

        try:
            unit = self.collect_unit(client, platform, period, dry_run=dry_run)
            logger.info("%s: %d campaigns, spend %.2f%s", label, unit.totals.campaign_count,
                        unit.totals.spend, " (dry run)" if dry_run else "", extra=context)
            return unit
        except AuthExpiredError as e:
            logger.error("%s: credential needs re-authentication: %s", label, e, extra=context)
            return failed(e, needs_reauth=True)
        except AdsApiError as e:
            logger.error("%s: API error (status %s): %s", label, e.status_code, e.message, extra=context)
            return failed(e)
        except requests.RequestException as e:
            logger.error("%s: request failed: %s", label, e, extra=context)
            return failed(e)
        except PersistenceError as e:
            logger.error("%s: failed to store summary: %s", label, e, extra=context)
            return failed(e)
        except ConfigError as e:
            logger.error("%s: not configured: %s", label, e, extra=context)
            return failed(e)
        except Exception as e:
            logger.exception("%s: unexpected error", label, extra=context)
            return failed(f"{e.__class__.__name__}: {e}")
