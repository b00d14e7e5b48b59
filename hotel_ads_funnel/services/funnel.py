"""
Conversion funnel parsing.

Meta returns conversions as a free-form list of {action_type, value} pairs;
Google Ads returns one row per conversion action name. Both are classified
into the same fixed set of funnel buckets here.

Meta matching is substring based and the buckets are not mutually
exclusive: a single "purchase" action counts towards both `reservations`
and `booking_step_3`.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from typing import Callable, Optional

from ..parsing import parse_float_or_0, parse_int_or_0

logger = logging.getLogger(__name__)

FUNNEL_BUCKETS = (
    "click_to_call",
    "email_contacts",
    "booking_step_1",
    "booking_step_2",
    "booking_step_3",
    "reservations",
)


@dataclass
class FunnelMetrics:
    """Conversion funnel counters for one campaign (or a whole period)."""
    click_to_call: int = 0
    email_contacts: int = 0
    booking_step_1: int = 0
    booking_step_2: int = 0
    booking_step_3: int = 0
    reservations: int = 0
    reservation_value: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BucketRule:
    """A funnel bucket and the predicate an action type must satisfy to feed it."""
    bucket: str
    predicate: Callable[[str], bool]


def _contains(*needles: str) -> Callable[[str], bool]:
    def predicate(action_type: str) -> bool:
        return any(needle in action_type for needle in needles)
    return predicate


# Meta action taxonomy. Every matching rule receives the action's value.
META_BUCKET_RULES: tuple[BucketRule, ...] = (
    BucketRule("click_to_call", _contains("click_to_call")),
    BucketRule("email_contacts", _contains("lead")),
    BucketRule("reservations", _contains("purchase")),
    BucketRule("booking_step_1", _contains("booking_step_1", "initiate_checkout")),
    BucketRule("booking_step_2", _contains("booking_step_2", "add_to_cart")),
    BucketRule("booking_step_3", _contains("booking_step_3", "purchase")),
)

RESERVATION_VALUE_ACTION = "purchase"


def _is_google_booking_step(name: str) -> bool:
    return any(s in name for s in ("krok", "step", "booking engine", "booking_step"))


def _is_google_reservation(name: str) -> bool:
    is_reservation = any(
        s in name for s in ("rezerwacja", "reservation", "zakup", "purchase", "complete")
    )
    # "Booking Engine - krok 3" style names must not count as reservations
    return is_reservation and not _is_google_booking_step(name)


# Google Ads conversion-action names (English and Polish account setups).
GOOGLE_BUCKET_RULES: tuple[BucketRule, ...] = (
    BucketRule("click_to_call", _contains("phone", "telefon", "call", "dzwonienie")),
    BucketRule(
        "email_contacts",
        _contains("email", "e-mail", "mail", "contact", "kontakt", "formularz"),
    ),
    BucketRule(
        "booking_step_1",
        _contains("step 1", "step1", "krok 1", "1 krok", "pierwszy krok",
                  "pierwszy_krok", "booking_step_1"),
    ),
    BucketRule(
        "booking_step_2",
        _contains("step 2", "step2", "krok 2", "2 krok", "drugi krok",
                  "drugi_krok", "booking_step_2"),
    ),
    BucketRule(
        "booking_step_3",
        _contains("step 3", "step3", "krok 3", "3 krok", "trzeci krok",
                  "trzeci_krok", "booking_step_3"),
    ),
    BucketRule("reservations", _is_google_reservation),
)


def classify(action_type: str, rules: tuple[BucketRule, ...] = META_BUCKET_RULES) -> list[str]:
    """Buckets a single action type feeds, in rule order."""
    normalized = str(action_type or "").lower()
    return [rule.bucket for rule in rules if rule.predicate(normalized)]


def _entries(value, label: str, campaign_name: Optional[str]) -> list[dict]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        logger.warning(
            "%s is not a list for campaign %r; treating as empty",
            label, campaign_name or "unknown",
        )
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def check_funnel_order(metrics: FunnelMetrics, campaign_name: Optional[str] = None):
    """Log (never fix) a later funnel step exceeding a non-zero earlier one."""
    name = campaign_name or "unknown"
    steps = [
        ("Step 1", metrics.booking_step_1),
        ("Step 2", metrics.booking_step_2),
        ("Step 3", metrics.booking_step_3),
        ("Reservations", metrics.reservations),
    ]
    for (earlier_label, earlier), (later_label, later) in zip(steps, steps[1:]):
        if earlier > 0 and later > earlier:
            logger.warning(
                "Funnel inversion for campaign %r: %s (%s) > %s (%s)",
                name, later_label, later, earlier_label, earlier,
            )


def parse_actions(
    actions=None,
    action_values=None,
    campaign_name: Optional[str] = None,
) -> FunnelMetrics:
    """
    Parse Meta `actions` / `action_values` arrays into funnel metrics.

    Each action's integer value is added to every bucket whose rule
    matches. `reservation_value` is overwritten by each `purchase` entry
    of `action_values`, so the last one wins.
    """
    metrics = FunnelMetrics()

    for action in _entries(actions, "actions", campaign_name):
        value = parse_int_or_0(action.get("value"))
        if not value:
            continue
        for bucket in classify(action.get("action_type"), META_BUCKET_RULES):
            setattr(metrics, bucket, getattr(metrics, bucket) + value)

    for action_value in _entries(action_values, "action_values", campaign_name):
        action_type = str(action_value.get("action_type") or "").lower()
        if action_type == RESERVATION_VALUE_ACTION:
            metrics.reservation_value = parse_float_or_0(action_value.get("value"))

    check_funnel_order(metrics, campaign_name)
    return metrics


def parse_google_conversions(conversions=None, campaign_name: Optional[str] = None) -> FunnelMetrics:
    """
    Parse Google Ads per-conversion-action rows into funnel metrics.

    Rows look like {"conversion_name", "conversions", "conversion_value"}.
    Attribution can yield fractional counts; these are rounded once summed.
    """
    totals = {bucket: 0.0 for bucket in FUNNEL_BUCKETS}
    reservation_value = 0.0

    for conversion in _entries(conversions, "conversions", campaign_name):
        name = conversion.get("conversion_name") or conversion.get("name")
        count = parse_float_or_0(conversion.get("conversions", conversion.get("value")))
        if not count:
            continue
        buckets = classify(name, GOOGLE_BUCKET_RULES)
        for bucket in buckets:
            totals[bucket] += count
        if "reservations" in buckets:
            reservation_value += parse_float_or_0(
                conversion.get("conversion_value", conversion.get("all_conversions_value"))
            )

    metrics = FunnelMetrics(
        **{bucket: int(round(total)) for bucket, total in totals.items()},
        reservation_value=round(reservation_value, 2),
    )
    check_funnel_order(metrics, campaign_name)
    return metrics


@dataclass
class CampaignRow:
    """One campaign over one date range, with its parsed funnel."""
    campaign_id: str
    campaign_name: str
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    actions: list = field(default_factory=list)
    action_values: list = field(default_factory=list)
    funnel: FunnelMetrics = field(default_factory=FunnelMetrics)

    def to_dict(self, include_raw: bool = False) -> dict:
        data = {
            "campaign_id": self.campaign_id,
            "campaign_name": self.campaign_name,
            "spend": self.spend,
            "impressions": self.impressions,
            "clicks": self.clicks,
            **self.funnel.to_dict(),
        }
        if include_raw:
            data["actions"] = list(self.actions)
            data["action_values"] = list(self.action_values)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CampaignRow":
        """Rebuild a row stored via to_dict()."""
        funnel_fields = {f.name for f in fields(FunnelMetrics)}
        funnel = FunnelMetrics(
            **{
                name: (parse_float_or_0 if name == "reservation_value" else parse_int_or_0)(data.get(name))
                for name in funnel_fields
            }
        )
        return cls(
            campaign_id=str(data.get("campaign_id") or ""),
            campaign_name=str(data.get("campaign_name") or ""),
            spend=parse_float_or_0(data.get("spend")),
            impressions=parse_int_or_0(data.get("impressions")),
            clicks=parse_int_or_0(data.get("clicks")),
            actions=list(data.get("actions") or []),
            action_values=list(data.get("action_values") or []),
            funnel=funnel,
        )


def enhance_campaign(row: dict) -> CampaignRow:
    """Build a CampaignRow from a raw Meta insights row."""
    campaign_name = str(row.get("campaign_name") or row.get("name") or "")
    actions = row.get("actions") or []
    action_values = row.get("action_values") or []
    return CampaignRow(
        campaign_id=str(row.get("campaign_id") or row.get("id") or ""),
        campaign_name=campaign_name,
        spend=parse_float_or_0(row.get("spend")),
        impressions=parse_int_or_0(row.get("impressions")),
        clicks=parse_int_or_0(row.get("clicks")),
        actions=actions if isinstance(actions, list) else [],
        action_values=action_values if isinstance(action_values, list) else [],
        funnel=parse_actions(actions, action_values, campaign_name),
    )


def enhance_campaigns(rows) -> list[CampaignRow]:
    """Parse a list of raw Meta insights rows; non-list input yields []."""
    if not isinstance(rows, (list, tuple)):
        logger.warning("enhance_campaigns: expected a list of rows, got %s", type(rows).__name__)
        return []
    return [enhance_campaign(row) for row in rows if isinstance(row, dict)]
