"""
Period aggregation of campaign rows.

Sums spend, delivery and funnel counters across campaigns and derives the
ratio metrics shown on the dashboard. Every division is guarded so an
empty or zero-spend period aggregates to zeros.
"""

from dataclasses import asdict, dataclass
from typing import Iterable

from .funnel import FUNNEL_BUCKETS, CampaignRow


@dataclass
class PeriodTotals:
    """Totals for one client, platform and period."""
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    click_to_call: int = 0
    email_contacts: int = 0
    booking_step_1: int = 0
    booking_step_2: int = 0
    booking_step_3: int = 0
    reservations: int = 0
    reservation_value: float = 0.0
    ctr: float = 0.0
    cpc: float = 0.0
    roas: float = 0.0
    cost_per_reservation: float = 0.0
    campaign_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def safe_divide(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is not positive."""
    if not denominator or denominator <= 0:
        return 0.0
    return numerator / denominator


def derive_ratios(totals: PeriodTotals) -> PeriodTotals:
    """Fill ctr, cpc, roas and cost_per_reservation from the summed fields."""
    totals.ctr = safe_divide(totals.clicks, totals.impressions) * 100
    totals.cpc = safe_divide(totals.spend, totals.clicks)

    if totals.spend > 0 and totals.reservation_value > 0:
        totals.roas = totals.reservation_value / totals.spend
    else:
        totals.roas = 0.0

    if totals.spend > 0 and totals.reservations > 0:
        totals.cost_per_reservation = totals.spend / totals.reservations
    else:
        totals.cost_per_reservation = 0.0

    return totals


def aggregate_campaigns(campaigns: Iterable[CampaignRow]) -> PeriodTotals:
    """
    Reduce campaign rows to period totals.

    Args:
        campaigns: rows that already carry parsed funnel metrics

    Returns:
        PeriodTotals with summed fields and derived ratios
    """
    totals = PeriodTotals()

    for campaign in campaigns:
        totals.campaign_count += 1
        totals.spend += campaign.spend
        totals.impressions += campaign.impressions
        totals.clicks += campaign.clicks
        for bucket in FUNNEL_BUCKETS:
            setattr(totals, bucket, getattr(totals, bucket) + getattr(campaign.funnel, bucket))
        totals.reservation_value += campaign.funnel.reservation_value

    return derive_ratios(totals)
