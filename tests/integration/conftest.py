"""Integration test fixtures: real SQLite I/O, mocked upstream."""

from __future__ import annotations

from pathlib import Path

import pytest

from fob_prices.core.config import StorageConfig, UpstreamConfig
from fob_prices.core.models import StorageBackend
from fob_prices.ingestion.client import FobClient
from fob_prices.ingestion.store import SqliteStore

BASE_URL = "https://fob.example.test/precios_fob.php"


@pytest.fixture
async def integration_store(tmp_path: Path) -> SqliteStore:
    """An initialized file-backed SqliteStore."""
    config = StorageConfig(
        backend=StorageBackend.SQLITE,
        sqlite_path=str(tmp_path / "integration.db"),
    )
    store = SqliteStore(config)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def fob_client() -> FobClient:
    config = UpstreamConfig(base_url=BASE_URL, backoff_seconds=0, rate_limit=1000)
    async with FobClient(config) as client:
        yield client
