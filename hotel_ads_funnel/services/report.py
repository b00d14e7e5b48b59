"""
Report output for period totals and per-campaign breakdowns.

Formatting only; all numbers come from the aggregator.
"""

from pathlib import Path
from typing import Optional

import pandas as pd

from .aggregator import PeriodTotals
from .funnel import CampaignRow

BREAKDOWN_COLUMNS = [
    "campaign_name",
    "spend",
    "impressions",
    "clicks",
    "click_to_call",
    "email_contacts",
    "booking_step_1",
    "booking_step_2",
    "booking_step_3",
    "reservations",
    "reservation_value",
]


def format_money(amount: float, currency: str = "PLN") -> str:
    return f"{amount:,.2f} {currency}"


def format_totals(totals: PeriodTotals, title: Optional[str] = None, currency: str = "PLN") -> list[str]:
    """Labelled lines for one period's totals."""
    lines = []
    if title:
        lines.append(title)
        lines.append("=" * len(title))

    lines.extend([
        f"  Campaigns: {totals.campaign_count:,}",
        f"  Spend: {format_money(totals.spend, currency)}",
        f"  Impressions: {totals.impressions:,}",
        f"  Clicks: {totals.clicks:,}",
        f"  CTR: {totals.ctr:.2f}%",
        f"  CPC: {format_money(totals.cpc, currency)}",
        "",
        "  Conversion funnel:",
        f"    Phone contacts: {totals.click_to_call:,}",
        f"    Email contacts: {totals.email_contacts:,}",
        f"    Booking step 1: {totals.booking_step_1:,}",
        f"    Booking step 2: {totals.booking_step_2:,}",
        f"    Booking step 3: {totals.booking_step_3:,}",
        f"    Reservations: {totals.reservations:,}",
        f"    Reservation value: {format_money(totals.reservation_value, currency)}",
        "",
        f"  ROAS: {totals.roas:.2f}x",
        f"  Cost per reservation: {format_money(totals.cost_per_reservation, currency)}",
    ])
    return lines


def totals_record(totals: PeriodTotals, **context) -> dict:
    """Flat machine-readable record (context keys first)."""
    record = dict(context)
    record.update(totals.to_dict())
    return record


def campaigns_frame(rows: list[CampaignRow]) -> pd.DataFrame:
    """Per-campaign breakdown, highest spend first."""
    frame = pd.DataFrame([row.to_dict() for row in rows], columns=["campaign_id", *BREAKDOWN_COLUMNS])
    if frame.empty:
        return frame
    return frame.sort_values("spend", ascending=False).reset_index(drop=True)


def write_campaigns_csv(rows: list[CampaignRow], path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    campaigns_frame(rows).to_csv(path, index=False)
    return path


def print_report(
    totals: PeriodTotals,
    title: Optional[str] = None,
    campaigns: Optional[list[CampaignRow]] = None,
    currency: str = "PLN",
):
    """Print totals and, when given, the per-campaign breakdown."""
    print()
    for line in format_totals(totals, title, currency):
        print(line)

    if campaigns:
        frame = campaigns_frame(campaigns)
        print("\n  By campaign:")
        print(frame[BREAKDOWN_COLUMNS].to_string(index=False, float_format=lambda v: f"{v:,.2f}"))
