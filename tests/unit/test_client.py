"""Tests for fob_prices.ingestion.client (FobClient)."""

from __future__ import annotations

import json
from datetime import date
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from fob_prices.core.config import UpstreamConfig
from fob_prices.core.exceptions import DecodeError, FetchError
from fob_prices.ingestion.client import FobClient

BASE_URL = "https://fob.example.test/precios_fob.php"
DAY = date(1993, 1, 4)


# --- Fixtures ---


@pytest.fixture
async def client(upstream_config: UpstreamConfig) -> FobClient:
    async with FobClient(upstream_config) as c:
        yield c


@pytest.fixture
def route():
    """Route for the fixture day; call inside an active respx mock."""

    def _route():
        return respx.get(BASE_URL, params={"Fecha": "04/01/1993"})

    return _route


# --- URL construction ---


class TestBuildUrl:
    def test_formats_date_day_first(self, client: FobClient):
        url = client.build_url(date(2024, 3, 9))
        assert url.startswith(BASE_URL)
        assert httpx.URL(url).params["Fecha"] == "09/03/2024"


# --- Successful fetches ---


class TestFetch:
    @respx.mock
    async def test_bare_list(self, client: FobClient, route, make_payload_record):
        route().mock(return_value=httpx.Response(200, json=[make_payload_record()]))

        records = await client.fetch(DAY)
        assert len(records) == 1
        assert records[0].position == "P1"

    @respx.mock
    async def test_wrapped_object(self, client: FobClient, route, make_payload_record):
        route().mock(
            return_value=httpx.Response(200, json={"posts": [make_payload_record()]})
        )

        records = await client.fetch(DAY)
        assert [r.circular for r in records] == ["C1"]

    @respx.mock
    async def test_empty_posts(self, client: FobClient, route):
        route().mock(return_value=httpx.Response(200, json={"posts": []}))

        assert await client.fetch(DAY) == []

    @respx.mock
    async def test_sends_fecha_param(self, client: FobClient, route):
        r = route().mock(return_value=httpx.Response(200, json=[]))

        await client.fetch(DAY)
        assert r.calls.last.request.url.params["Fecha"] == "04/01/1993"


# --- Retry policy ---


class TestRetries:
    @respx.mock
    async def test_non_200_exhausts_four_attempts(self, client: FobClient, route):
        r = route().mock(return_value=httpx.Response(503))

        with pytest.raises(FetchError, match="status 503") as exc_info:
            await client.fetch(DAY, max_retries=3)
        assert r.call_count == 4
        assert exc_info.value.context["status_code"] == 503
        assert exc_info.value.context["attempts"] == 4
        assert exc_info.value.context["date"] == "1993-01-04"

    @respx.mock
    async def test_zero_retries_is_one_attempt(self, client: FobClient, route):
        r = route().mock(return_value=httpx.Response(500))

        with pytest.raises(FetchError):
            await client.fetch(DAY, max_retries=0)
        assert r.call_count == 1

    @respx.mock
    async def test_default_budget_from_config(self, upstream_config, route):
        r = route().mock(return_value=httpx.Response(500))
        config = upstream_config.model_copy(update={"max_retries": 1})

        async with FobClient(config) as client:
            with pytest.raises(FetchError):
                await client.fetch(DAY)
        assert r.call_count == 2

    @respx.mock
    async def test_recovers_after_server_error(self, client: FobClient, route):
        r = route().mock(
            side_effect=[httpx.Response(502), httpx.Response(200, json=[])]
        )

        assert await client.fetch(DAY) == []
        assert r.call_count == 2

    @respx.mock
    async def test_connection_error_retried(self, client: FobClient, route, make_payload_record):
        r = route().mock(
            side_effect=[
                httpx.ConnectError("connection refused"),
                httpx.Response(200, json=[make_payload_record()]),
            ]
        )

        records = await client.fetch(DAY)
        assert len(records) == 1
        assert r.call_count == 2

    @respx.mock
    async def test_connection_error_exhausted(self, client: FobClient, route):
        route().mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(FetchError, match="Request to the API failed") as exc_info:
            await client.fetch(DAY, max_retries=2)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @respx.mock
    async def test_redirect_loop_retried_then_fetch_error(self, client: FobClient, route):
        r = route().mock(side_effect=httpx.TooManyRedirects("loop"))

        with pytest.raises(FetchError) as exc_info:
            await client.fetch(DAY, max_retries=1)
        assert r.call_count == 2
        assert isinstance(exc_info.value.__cause__, httpx.TooManyRedirects)

    @respx.mock
    async def test_empty_body_retried(self, client: FobClient, route):
        r = route().mock(
            side_effect=[httpx.Response(200, content=b""), httpx.Response(200, json=[])]
        )

        assert await client.fetch(DAY) == []
        assert r.call_count == 2

    @respx.mock
    async def test_empty_body_exhausted(self, client: FobClient, route):
        route().mock(return_value=httpx.Response(200, content=b""))

        with pytest.raises(FetchError, match="empty response"):
            await client.fetch(DAY, max_retries=1)

    @respx.mock
    async def test_html_body_exhausted_includes_excerpt(self, client: FobClient, route):
        html = "<html><body>Service Unavailable</body></html>" + "x" * 500
        r = route().mock(return_value=httpx.Response(200, text=html))

        with pytest.raises(FetchError, match="HTML instead of JSON") as exc_info:
            await client.fetch(DAY, max_retries=3)
        assert r.call_count == 4
        assert exc_info.value.context["body"] == html[:200]
        assert "Service Unavailable" in str(exc_info.value)

    @respx.mock
    async def test_error_text_exhausted_includes_full_body(self, client: FobClient, route):
        route().mock(return_value=httpx.Response(200, text="Error: fecha invalida"))

        with pytest.raises(FetchError, match="error message") as exc_info:
            await client.fetch(DAY, max_retries=1)
        assert exc_info.value.context["body"] == "Error: fecha invalida"

    @respx.mock
    async def test_html_then_json_recovers(self, client: FobClient, route, make_payload_record):
        route().mock(
            side_effect=[
                httpx.Response(200, text="<html>busy</html>"),
                httpx.Response(200, json={"posts": [make_payload_record()]}),
            ]
        )

        assert len(await client.fetch(DAY)) == 1

    @respx.mock
    async def test_decode_failure_is_terminal(self, client: FobClient, route):
        r = route().mock(return_value=httpx.Response(200, text='{"posts": 5}'))

        with pytest.raises(DecodeError) as exc_info:
            await client.fetch(DAY, max_retries=3)
        assert r.call_count == 1
        assert exc_info.value.context["date"] == "1993-01-04"


class TestBackoff:
    @respx.mock
    async def test_linear_attempt_indexed_delays(self, upstream_config, route, monkeypatch):
        sleep = AsyncMock()
        monkeypatch.setattr("fob_prices.ingestion.client.asyncio.sleep", sleep)
        route().mock(return_value=httpx.Response(500))
        config = upstream_config.model_copy(update={"backoff_seconds": 2.0})

        async with FobClient(config) as client:
            with pytest.raises(FetchError):
                await client.fetch(DAY, max_retries=3)

        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0, 6.0]

    @respx.mock
    async def test_no_sleep_after_final_attempt(self, upstream_config, route, monkeypatch):
        sleep = AsyncMock()
        monkeypatch.setattr("fob_prices.ingestion.client.asyncio.sleep", sleep)
        route().mock(return_value=httpx.Response(500))

        async with FobClient(upstream_config) as client:
            with pytest.raises(FetchError):
                await client.fetch(DAY, max_retries=0)

        sleep.assert_not_awaited()

    @respx.mock
    async def test_no_sleep_on_success(self, client: FobClient, route, monkeypatch):
        sleep = AsyncMock()
        monkeypatch.setattr("fob_prices.ingestion.client.asyncio.sleep", sleep)
        route().mock(return_value=httpx.Response(200, text=json.dumps([])))

        await client.fetch(DAY)
        sleep.assert_not_awaited()


# --- Context Manager ---


class TestContextManager:
    async def test_async_context_manager(self, upstream_config: UpstreamConfig):
        async with FobClient(upstream_config) as client:
            assert client is not None
        assert client._client.is_closed
