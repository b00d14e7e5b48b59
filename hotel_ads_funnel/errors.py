"""
Error types for the hotel ads reporting toolkit.

Configuration errors are fatal and reported once at startup. Upstream API
errors are caught per unit of work by the collector. Rate-limit errors are
retried by the retry module before they surface as upstream errors.
"""

from typing import Optional


class HotelAdsError(Exception):
    """Base class for all toolkit errors."""


class ConfigError(HotelAdsError, ValueError):
    """Required configuration (env vars, credentials) is missing or invalid."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class InvalidPeriodError(HotelAdsError, ValueError):
    """A requested reporting period cannot be resolved."""


class AdsApiError(HotelAdsError):
    """Non-success response from an ad platform."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        platform: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.platform = platform
        self.code = code

    def __str__(self):
        prefix = f"[{self.platform}] " if self.platform else ""
        if self.status_code is not None:
            return f"{prefix}HTTP {self.status_code}: {self.message}"
        return f"{prefix}{self.message}"


class AuthExpiredError(AdsApiError):
    """Credential was rejected (401 / invalid_grant) and needs re-authentication."""


class RateLimitError(AdsApiError):
    """Platform signalled throttling (429 or a quota error code)."""


class PersistenceError(HotelAdsError):
    """Database write or read failed."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original
