"""Shared pytest fixtures for fob-prices."""

from datetime import datetime

import pytest

from fob_prices.core.config import StorageConfig, UpstreamConfig
from fob_prices.core.models import PriceRecord, StorageBackend, StoredPriceRow
from fob_prices.ingestion.store import SqliteStore

BASE_URL = "https://fob.example.test/precios_fob.php"


@pytest.fixture
def upstream_config() -> UpstreamConfig:
    """Fast upstream config: no backoff, effectively no rate limit."""
    return UpstreamConfig(
        base_url=BASE_URL,
        max_retries=3,
        backoff_seconds=0,
        rate_limit=1000,
        request_timeout=5,
    )


@pytest.fixture
def make_payload_record():
    """Factory for upstream JSON records (dicts) with overridable defaults."""

    def _make(**overrides):
        defaults = {
            "fecha": "1993-01-04 00:00:00.000",
            "circular": "C1",
            "posicion": "P1",
            "precio": 100.5,
            "mesDesde": 1,
            "añoDesde": 1993,
            "mesHasta": 12,
            "añoHasta": 1993,
        }
        defaults.update(overrides)
        return defaults

    return _make


@pytest.fixture
def make_record(make_payload_record):
    """Factory for PriceRecord built from an upstream-shaped dict."""

    def _make(**overrides):
        return PriceRecord.model_validate(make_payload_record(**overrides))

    return _make


@pytest.fixture
def make_row():
    """Factory for StoredPriceRow with overridable defaults."""

    def _make(**overrides):
        defaults = dict(
            date=datetime(1993, 1, 4),
            circular="C1",
            position="P1",
            price=100.5,
            month_from=1,
            year_from=1993,
            month_to=12,
            year_to=1993,
        )
        defaults.update(overrides)
        return StoredPriceRow(**defaults)

    return _make


@pytest.fixture
async def store():
    """Create an in-memory SqliteStore for testing."""
    config = StorageConfig(backend=StorageBackend.SQLITE, sqlite_path=":memory:")
    s = SqliteStore(config)
    await s.initialize()
    yield s
    await s.close()
