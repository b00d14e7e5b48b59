"""
Relational store for clients, period summaries and current-period caches.

Summaries are keyed by (client, platform, summary_type, summary_date);
caches by (client, period_id, platform). Upserts assume the run has
exclusive access to the rows it touches.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, declared_attr, sessionmaker

from ..errors import PersistenceError
from .aggregator import PeriodTotals
from .funnel import CampaignRow
from .periods import MONTHLY, WEEKLY, Period

logger = logging.getLogger(__name__)

Base = declarative_base()

PLATFORMS = ("meta", "google")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    """A hotel client and its ad-platform identifiers."""
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=True)

    ad_account_id = Column(String(64), nullable=True)  # Meta ad account (with or without act_)
    meta_access_token = Column(Text, nullable=True)

    google_ads_customer_id = Column(String(20), nullable=True)
    google_ads_enabled = Column(Boolean, default=False, nullable=False)

    api_status = Column(String(32), default="valid", nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def has_platform(self, platform: str) -> bool:
        if platform == "meta":
            return bool(self.ad_account_id)
        if platform == "google":
            return bool(self.google_ads_enabled and self.google_ads_customer_id)
        return False


class CampaignSummary(Base):
    """Aggregated totals for one client, platform and period."""
    __tablename__ = "campaign_summaries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    platform = Column(String(16), nullable=False, default="meta")
    summary_type = Column(String(16), nullable=False)  # monthly / weekly
    summary_date = Column(Date, nullable=False)  # period start
    period_end = Column(Date, nullable=False)

    total_spend = Column(Float, default=0.0, nullable=False)
    total_impressions = Column(Integer, default=0, nullable=False)
    total_clicks = Column(Integer, default=0, nullable=False)
    click_to_call = Column(Integer, default=0, nullable=False)
    email_contacts = Column(Integer, default=0, nullable=False)
    booking_step_1 = Column(Integer, default=0, nullable=False)
    booking_step_2 = Column(Integer, default=0, nullable=False)
    booking_step_3 = Column(Integer, default=0, nullable=False)
    reservations = Column(Integer, default=0, nullable=False)
    reservation_value = Column(Float, default=0.0, nullable=False)
    average_ctr = Column(Float, default=0.0, nullable=False)
    average_cpc = Column(Float, default=0.0, nullable=False)
    roas = Column(Float, default=0.0, nullable=False)
    cost_per_reservation = Column(Float, default=0.0, nullable=False)
    active_campaigns = Column(Integer, default=0, nullable=False)

    campaign_data = Column(JSON, nullable=True)
    data_source = Column(String(64), nullable=True)
    last_updated = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("client_id", "platform", "summary_type", "summary_date",
                         name="uq_campaign_summaries_client_platform_period"),
    )

    def totals(self) -> PeriodTotals:
        return PeriodTotals(
            spend=self.total_spend,
            impressions=self.total_impressions,
            clicks=self.total_clicks,
            click_to_call=self.click_to_call,
            email_contacts=self.email_contacts,
            booking_step_1=self.booking_step_1,
            booking_step_2=self.booking_step_2,
            booking_step_3=self.booking_step_3,
            reservations=self.reservations,
            reservation_value=self.reservation_value,
            ctr=self.average_ctr,
            cpc=self.average_cpc,
            roas=self.roas,
            cost_per_reservation=self.cost_per_reservation,
            campaign_count=self.active_campaigns,
        )

    def campaigns(self) -> list[CampaignRow]:
        return [CampaignRow.from_dict(c) for c in (self.campaign_data or [])]


class _PeriodCacheMixin:
    id = Column(Integer, primary_key=True, autoincrement=True)

    @declared_attr
    def client_id(cls):
        return Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)

    period_id = Column(String(16), nullable=False)
    platform = Column(String(16), nullable=False, default="meta")
    cache_data = Column(JSON, nullable=False)
    last_updated = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class CurrentMonthCache(_PeriodCacheMixin, Base):
    __tablename__ = "current_month_cache"
    __table_args__ = (
        UniqueConstraint("client_id", "period_id", "platform", name="uq_current_month_cache_key"),
    )


class CurrentWeekCache(_PeriodCacheMixin, Base):
    __tablename__ = "current_week_cache"
    __table_args__ = (
        UniqueConstraint("client_id", "period_id", "platform", name="uq_current_week_cache_key"),
    )


CACHE_MODELS = {MONTHLY: CurrentMonthCache, WEEKLY: CurrentWeekCache}


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class SummaryStore:
    """Thin repository over the SQLAlchemy models."""

    def __init__(self, database_url: str, echo: bool = False):
        connect_args = {}
        if database_url.startswith("sqlite"):
            # sessions are opened from API worker threads and refresh threads
            connect_args["check_same_thread"] = False
        self.engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self):
        """Create any missing tables."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create tables: {e}", original=e)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional session; driver errors become PersistenceError."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            detail = getattr(e, "orig", None) or e
            raise PersistenceError(f"{e.__class__.__name__}: {detail}", original=e)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- clients ---------------------------------------------------------

    def add_client(self, name: str, **fields) -> Client:
        client = Client(name=name, **fields)
        with self.session() as session:
            session.add(client)
        return client

    def get_client(self, client_id: str) -> Optional[Client]:
        with self.session() as session:
            return session.get(Client, client_id)

    def list_clients(self, name: Optional[str] = None) -> list[Client]:
        """All clients, or those whose name contains `name` (case-insensitive)."""
        with self.session() as session:
            stmt = select(Client).order_by(Client.name)
            if name:
                stmt = stmt.where(Client.name.ilike(f"%{name}%"))
            return list(session.scalars(stmt))

    # -- system settings -------------------------------------------------

    def get_setting(self, key: str) -> Optional[str]:
        with self.session() as session:
            setting = session.get(SystemSetting, key)
            return setting.value if setting else None

    def set_setting(self, key: str, value: Optional[str]):
        with self.session() as session:
            setting = session.get(SystemSetting, key)
            if setting is None:
                session.add(SystemSetting(key=key, value=value))
            else:
                setting.value = value

    def get_settings(self) -> dict:
        with self.session() as session:
            return {s.key: s.value for s in session.scalars(select(SystemSetting))}

    # -- summaries -------------------------------------------------------

    def upsert_summary(
        self,
        client_id: str,
        platform: str,
        period: Period,
        totals: PeriodTotals,
        campaigns: Optional[list[CampaignRow]] = None,
        data_source: str = "api",
    ) -> CampaignSummary:
        """Insert or update the summary row on its natural key."""
        values = {
            "period_end": period.end,
            "total_spend": totals.spend,
            "total_impressions": totals.impressions,
            "total_clicks": totals.clicks,
            "click_to_call": totals.click_to_call,
            "email_contacts": totals.email_contacts,
            "booking_step_1": totals.booking_step_1,
            "booking_step_2": totals.booking_step_2,
            "booking_step_3": totals.booking_step_3,
            "reservations": totals.reservations,
            "reservation_value": totals.reservation_value,
            "average_ctr": totals.ctr,
            "average_cpc": totals.cpc,
            "roas": totals.roas,
            "cost_per_reservation": totals.cost_per_reservation,
            "active_campaigns": totals.campaign_count,
            "campaign_data": [c.to_dict() for c in (campaigns or [])],
            "data_source": data_source,
            "last_updated": utcnow(),
        }

        with self.session() as session:
            summary = session.scalars(
                select(CampaignSummary).where(
                    CampaignSummary.client_id == client_id,
                    CampaignSummary.platform == platform,
                    CampaignSummary.summary_type == period.period_type,
                    CampaignSummary.summary_date == period.start,
                )
            ).first()
            if summary is None:
                summary = CampaignSummary(
                    client_id=client_id,
                    platform=platform,
                    summary_type=period.period_type,
                    summary_date=period.start,
                    **values,
                )
                session.add(summary)
            else:
                for key, value in values.items():
                    setattr(summary, key, value)
        return summary

    def get_summary(self, client_id: str, platform: str, summary_type: str,
                    summary_date: date) -> Optional[CampaignSummary]:
        with self.session() as session:
            return session.scalars(
                select(CampaignSummary).where(
                    CampaignSummary.client_id == client_id,
                    CampaignSummary.platform == platform,
                    CampaignSummary.summary_type == summary_type,
                    CampaignSummary.summary_date == summary_date,
                )
            ).first()

    def list_summaries(self, client_id: str, summary_type: Optional[str] = None,
                       platform: Optional[str] = None) -> list[CampaignSummary]:
        """Summaries for a client, newest period first."""
        with self.session() as session:
            stmt = select(CampaignSummary).where(CampaignSummary.client_id == client_id)
            if summary_type:
                stmt = stmt.where(CampaignSummary.summary_type == summary_type)
            if platform:
                stmt = stmt.where(CampaignSummary.platform == platform)
            stmt = stmt.order_by(CampaignSummary.summary_date.desc(), CampaignSummary.platform)
            return list(session.scalars(stmt))

    # -- current period caches -------------------------------------------

    def get_cache(self, client_id: str, period_type: str, period_id: str,
                  platform: str = "meta"):
        model = CACHE_MODELS[period_type]
        with self.session() as session:
            return session.scalars(
                select(model).where(
                    model.client_id == client_id,
                    model.period_id == period_id,
                    model.platform == platform,
                )
            ).first()

    def latest_cache(self, client_id: str, period_type: str, platform: str = "meta"):
        """Most recently updated cache row regardless of period."""
        model = CACHE_MODELS[period_type]
        with self.session() as session:
            return session.scalars(
                select(model)
                .where(model.client_id == client_id, model.platform == platform)
                .order_by(model.last_updated.desc())
            ).first()

    def put_cache(self, client_id: str, period_type: str, period_id: str, cache_data: dict,
                  platform: str = "meta", last_updated: Optional[datetime] = None):
        model = CACHE_MODELS[period_type]
        stamp = last_updated or utcnow()
        with self.session() as session:
            row = session.scalars(
                select(model).where(
                    model.client_id == client_id,
                    model.period_id == period_id,
                    model.platform == platform,
                )
            ).first()
            if row is None:
                row = model(client_id=client_id, period_id=period_id, platform=platform,
                            cache_data=cache_data, last_updated=stamp)
                session.add(row)
            else:
                row.cache_data = cache_data
                row.last_updated = stamp
        return row
