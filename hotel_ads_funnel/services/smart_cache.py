"""
Smart cache for current-month / current-week metrics.

Serves the stored snapshot of the running period instead of re-querying
the ad platform. Fresh snapshots are returned as-is; stale ones are also
returned immediately, optionally kicking off a background refresh.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .aggregator import aggregate_campaigns
from .funnel import CampaignRow
from .periods import Period
from .store import Client, SummaryStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=6)
REFRESH_COOLDOWN_SECONDS = 5 * 60

# fetch(client, platform, period) -> campaign rows
Fetcher = Callable[[Client, str, Period], list[CampaignRow]]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def cache_age(last_updated: datetime, now: Optional[datetime] = None) -> timedelta:
    now = _as_utc(now) if now else datetime.now(timezone.utc)
    return now - _as_utc(last_updated)


def is_cache_fresh(last_updated: datetime, now: Optional[datetime] = None,
                   max_age: timedelta = DEFAULT_MAX_AGE) -> bool:
    """True while the snapshot is younger than max_age."""
    return cache_age(last_updated, now) < max_age


@dataclass
class CacheResult:
    data: dict
    source: str  # cache / stale-cache / cache-miss / force-refresh
    cache_age: Optional[timedelta] = None

    @property
    def from_cache(self) -> bool:
        return self.source in ("cache", "stale-cache")


def build_snapshot(period: Period, campaigns: list[CampaignRow], fetched_at: datetime) -> dict:
    """JSON-serialisable cache payload for a period."""
    return {
        "period_id": period.period_id,
        "date_range": period.as_time_range(),
        "stats": aggregate_campaigns(campaigns).to_dict(),
        "campaigns": [c.to_dict() for c in campaigns],
        "fetched_at": fetched_at.isoformat(),
    }


class SmartCache:
    """Stale-while-revalidate cache over the current_*_cache tables."""

    def __init__(
        self,
        store: SummaryStore,
        fetch: Fetcher,
        max_age: timedelta = DEFAULT_MAX_AGE,
        background_refresh: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.fetch = fetch
        self.max_age = max_age
        self.background_refresh = background_refresh
        self.clock = clock

        self._lock = threading.Lock()
        self._last_refresh: dict[tuple, float] = {}
        self._threads: list[threading.Thread] = []

    def refresh(self, client: Client, period: Period, platform: str = "meta") -> dict:
        """Fetch from the platform and overwrite the snapshot."""
        now = self.clock()
        campaigns = self.fetch(client, platform, period)
        snapshot = build_snapshot(period, campaigns, now)
        self.store.put_cache(client.id, period.period_type, period.period_id, snapshot,
                             platform=platform, last_updated=now)
        logger.info("Cache refreshed for %s %s %s (%d campaigns)",
                    client.name, platform, period.period_id, len(campaigns))
        return snapshot

    def get(self, client: Client, period: Period, platform: str = "meta",
            force_refresh: bool = False) -> CacheResult:
        """Snapshot for the client's running period, fetching only when needed."""
        if force_refresh:
            logger.info("Force refresh requested for %s %s, bypassing cache", client.name, period.period_id)
            return CacheResult(self.refresh(client, period, platform), "force-refresh")

        cached = self.store.get_cache(client.id, period.period_type, period.period_id, platform)
        if cached is None:
            logger.info("No cache for %s %s %s, fetching", client.name, platform, period.period_id)
            return CacheResult(self.refresh(client, period, platform), "cache-miss")

        age = cache_age(cached.last_updated, self.clock())
        if age < self.max_age:
            return CacheResult(cached.cache_data, "cache", age)

        if self.background_refresh:
            self._refresh_in_background(client, period, platform)
        else:
            logger.info("Cache for %s %s is stale (%.1fh), background refresh disabled",
                        client.name, period.period_id, age.total_seconds() / 3600)
        return CacheResult(cached.cache_data, "stale-cache", age)

    def _refresh_in_background(self, client: Client, period: Period, platform: str):
        key = (client.id, period.period_type, period.period_id, platform)
        with self._lock:
            last = self._last_refresh.get(key)
            if last is not None and time.monotonic() - last < REFRESH_COOLDOWN_SECONDS:
                logger.debug("Background refresh for %s skipped, cooldown active", key)
                return
            self._last_refresh[key] = time.monotonic()

        def run():
            try:
                self.refresh(client, period, platform)
            except Exception:
                logger.exception("Background cache refresh failed for %s", key)
                # allow the next request to retry
                with self._lock:
                    self._last_refresh.pop(key, None)

        thread = threading.Thread(target=run, name=f"cache-refresh-{period.period_id}", daemon=True)
        self._threads.append(thread)
        thread.start()

    def wait(self, timeout: Optional[float] = None):
        """Join outstanding background refreshes."""
        for thread in list(self._threads):
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]
