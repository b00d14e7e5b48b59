import json
from datetime import date
from unittest.mock import MagicMock

import pytest

from hotel_ads_funnel.services.store import SummaryStore


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.reason = "OK" if status_code == 200 else "Error"

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def http_session():
    return MagicMock()


@pytest.fixture
def store(tmp_path):
    store = SummaryStore(f"sqlite:///{tmp_path / 'test.db'}")
    store.create_all()
    return store


@pytest.fixture
def client(store):
    return store.add_client(
        "Hotel Belmonte",
        email="belmonte@example.com",
        ad_account_id="438600948208231",
        meta_access_token="meta-token",
        google_ads_customer_id="789-260-9395",
        google_ads_enabled=True,
    )


@pytest.fixture
def today():
    # a Thursday
    return date(2025, 10, 16)
