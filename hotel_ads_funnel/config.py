"""
Runtime configuration.

Settings are read from the environment (and a local .env file) once at
process start and passed explicitly into connectors, the store and the
collector.
"""

import os
from dataclasses import dataclass, field, fields, replace
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError
from .logging_config import LOG_FORMATS

DEFAULT_DATABASE_URL = "sqlite:///./hotel_ads.db"
DEFAULT_TIMEZONE = "Europe/Warsaw"

META_CREDENTIALS = ("META_ACCESS_TOKEN",)
GOOGLE_ADS_CREDENTIALS = (
    "GOOGLE_ADS_CLIENT_ID",
    "GOOGLE_ADS_CLIENT_SECRET",
    "GOOGLE_ADS_DEVELOPER_TOKEN",
    "GOOGLE_ADS_REFRESH_TOKEN",
)

# system_settings keys that may stand in for missing Google Ads env vars
SYSTEM_SETTING_KEYS = {
    "GOOGLE_ADS_CLIENT_ID": "google_ads_client_id",
    "GOOGLE_ADS_CLIENT_SECRET": "google_ads_client_secret",
    "GOOGLE_ADS_DEVELOPER_TOKEN": "google_ads_developer_token",
    "GOOGLE_ADS_REFRESH_TOKEN": "google_ads_manager_refresh_token",
    "GOOGLE_ADS_LOGIN_CUSTOMER_ID": "google_ads_manager_customer_id",
}


def _env_float(env: dict, name: str, default: float) -> float:
    raw = env.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_int(env: dict, name: str, default: int) -> int:
    raw = env.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once via from_env()."""

    DATABASE_URL: str = DEFAULT_DATABASE_URL

    META_ACCESS_TOKEN: Optional[str] = None
    META_API_VERSION: str = "v18.0"

    GOOGLE_ADS_CLIENT_ID: Optional[str] = None
    GOOGLE_ADS_CLIENT_SECRET: Optional[str] = None
    GOOGLE_ADS_DEVELOPER_TOKEN: Optional[str] = None
    GOOGLE_ADS_REFRESH_TOKEN: Optional[str] = None
    GOOGLE_ADS_LOGIN_CUSTOMER_ID: Optional[str] = None
    GOOGLE_ADS_API_VERSION: str = "v19"

    REPORTING_TIMEZONE: str = DEFAULT_TIMEZONE
    REQUEST_DELAY_SECONDS: float = 2.0
    RETRY_MAX_ATTEMPTS: int = 3
    CACHE_MAX_AGE_HOURS: float = 6.0
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"
    CORS_ORIGINS: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, env: Optional[dict] = None, dotenv: bool = True) -> "Settings":
        """Build settings from os.environ (or an explicit mapping for tests)."""
        if env is None:
            if dotenv:
                load_dotenv()
            env = dict(os.environ)

        def text(name: str, default: Optional[str] = None) -> Optional[str]:
            value = env.get(name)
            if value is None or not str(value).strip():
                return default
            return str(value).strip()

        origins = text("CORS_ORIGINS", "") or ""
        log_format = text("LOG_FORMAT", "text").lower()
        if log_format not in LOG_FORMATS:
            raise ConfigError(f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got {log_format!r}")

        return cls(
            DATABASE_URL=text("DATABASE_URL", DEFAULT_DATABASE_URL),
            META_ACCESS_TOKEN=text("META_ACCESS_TOKEN"),
            META_API_VERSION=text("META_API_VERSION", "v18.0"),
            GOOGLE_ADS_CLIENT_ID=text("GOOGLE_ADS_CLIENT_ID"),
            GOOGLE_ADS_CLIENT_SECRET=text("GOOGLE_ADS_CLIENT_SECRET"),
            GOOGLE_ADS_DEVELOPER_TOKEN=text("GOOGLE_ADS_DEVELOPER_TOKEN"),
            GOOGLE_ADS_REFRESH_TOKEN=text("GOOGLE_ADS_REFRESH_TOKEN"),
            GOOGLE_ADS_LOGIN_CUSTOMER_ID=text("GOOGLE_ADS_LOGIN_CUSTOMER_ID"),
            GOOGLE_ADS_API_VERSION=text("GOOGLE_ADS_API_VERSION", "v19"),
            REPORTING_TIMEZONE=text("REPORTING_TIMEZONE", DEFAULT_TIMEZONE),
            REQUEST_DELAY_SECONDS=_env_float(env, "REQUEST_DELAY_SECONDS", 2.0),
            RETRY_MAX_ATTEMPTS=_env_int(env, "RETRY_MAX_ATTEMPTS", 3),
            CACHE_MAX_AGE_HOURS=_env_float(env, "CACHE_MAX_AGE_HOURS", 6.0),
            LOG_LEVEL=text("LOG_LEVEL", "INFO").upper(),
            LOG_FORMAT=log_format,
            CORS_ORIGINS=[o.strip() for o in origins.split(",") if o.strip()],
        )

    def missing(self, *names: str) -> list[str]:
        """Names from `names` whose value is empty."""
        known = {f.name for f in fields(self)}
        return [n for n in names if n not in known or not getattr(self, n)]

    def require(self, *names: str) -> "Settings":
        """Raise ConfigError listing every missing variable."""
        missing = self.missing(*names)
        if missing:
            raise ConfigError(f"Missing credentials: {', '.join(missing)}", missing=missing)
        return self

    @property
    def has_meta(self) -> bool:
        return not self.missing(*META_CREDENTIALS)

    @property
    def has_google_ads(self) -> bool:
        return not self.missing(*GOOGLE_ADS_CREDENTIALS)

    def with_overrides(self, system_settings: dict) -> "Settings":
        """Fill Google Ads credentials the environment lacks from system_settings rows."""
        updates = {}
        for name, key in SYSTEM_SETTING_KEYS.items():
            if not getattr(self, name) and system_settings.get(key):
                updates[name] = str(system_settings[key])
        return replace(self, **updates) if updates else self
