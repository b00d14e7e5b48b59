"""
Metrics API endpoints.

Serves stored summaries and current-period cache snapshots. Nothing here
calls the ad platforms.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from ..services.periods import MONTHLY, WEEKLY
from ..services.store import PLATFORMS, SummaryStore

router = APIRouter()


class ClientOut(BaseModel):
    id: str
    name: str
    has_meta: bool
    has_google_ads: bool
    api_status: str


class SummaryOut(BaseModel):
    platform: str
    summary_type: str
    summary_date: date
    period_end: date
    total_spend: float
    total_impressions: int
    total_clicks: int
    click_to_call: int
    email_contacts: int
    booking_step_1: int
    booking_step_2: int
    booking_step_3: int
    reservations: int
    reservation_value: float
    average_ctr: float
    average_cpc: float
    roas: float
    cost_per_reservation: float
    active_campaigns: int
    data_source: Optional[str] = None
    last_updated: Optional[datetime] = None


class CacheOut(BaseModel):
    client_id: str
    period_type: str
    period_id: str
    platform: str
    last_updated: datetime
    data: dict


def get_store(request: Request) -> SummaryStore:
    return request.app.state.store


def _check_platform(platform: Optional[str]):
    if platform is not None and platform not in PLATFORMS:
        raise HTTPException(status_code=400, detail=f"Invalid platform: {platform}")


@router.get("/clients", response_model=list[ClientOut])
async def list_clients(request: Request, name: Optional[str] = None):
    """All clients, optionally filtered by name."""
    clients = get_store(request).list_clients(name)
    return [
        ClientOut(
            id=c.id,
            name=c.name,
            has_meta=c.has_platform("meta"),
            has_google_ads=c.has_platform("google"),
            api_status=c.api_status,
        )
        for c in clients
    ]


@router.get("/{client_id}/summaries", response_model=list[SummaryOut])
async def list_summaries(
    client_id: str,
    request: Request,
    summary_type: Optional[str] = Query(None, pattern=f"^({MONTHLY}|{WEEKLY})$"),
    platform: Optional[str] = None,
):
    """Stored period summaries for a client, newest first."""
    _check_platform(platform)
    store = get_store(request)
    if store.get_client(client_id) is None:
        raise HTTPException(status_code=404, detail=f"Client not found: {client_id}")

    summaries = store.list_summaries(client_id, summary_type=summary_type, platform=platform)
    return [
        SummaryOut(**{field: getattr(s, field) for field in SummaryOut.model_fields})
        for s in summaries
    ]


@router.get("/{client_id}/cache/{period_type}", response_model=CacheOut)
async def get_cache(client_id: str, period_type: str, request: Request, platform: str = "meta"):
    """Latest current-month / current-week snapshot for a client."""
    if period_type not in (MONTHLY, WEEKLY):
        raise HTTPException(status_code=400, detail=f"Invalid period type: {period_type}")
    _check_platform(platform)

    cached = get_store(request).latest_cache(client_id, period_type, platform)
    if cached is None:
        raise HTTPException(status_code=404, detail="No cached data for this client and period")

    return CacheOut(
        client_id=cached.client_id,
        period_type=period_type,
        period_id=cached.period_id,
        platform=cached.platform,
        last_updated=cached.last_updated,
        data=cached.cache_data,
    )
