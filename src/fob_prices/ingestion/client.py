"""Rate-limited async HTTP client for the FOB price web service."""

from __future__ import annotations

import asyncio
import logging
from datetime import date

import httpx
from aiolimiter import AsyncLimiter

from fob_prices.core.config import UpstreamConfig
from fob_prices.core.exceptions import DecodeError, FetchError
from fob_prices.core.models import REQUEST_DATE_FORMAT, PriceRecord
from fob_prices.ingestion.decoder import decode_records

logger = logging.getLogger(__name__)

# Body excerpt sizes
_DEBUG_EXCERPT = 500
_HTML_EXCERPT = 200


class FobClient:
    """Rate-limited async client for the daily FOB price endpoint.

    One request per calendar day: ``GET <base_url>?Fecha=DD/MM/YYYY``.
    The service is unreliable and sometimes answers 200 with an HTML error
    page or a plain-text "Error..." message, so bodies are sniffed before
    JSON decoding and those cases are retried like transport failures.

    Use via `async with FobClient(...) as client:`.
    """

    def __init__(self, config: UpstreamConfig) -> None:
        self._config = config
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> FobClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    def build_url(self, day: date) -> str:
        """Full request URL for one calendar day."""
        return str(httpx.URL(self._config.base_url, params=self._params(day)))

    @staticmethod
    def _params(day: date) -> dict[str, str]:
        return {"Fecha": day.strftime(REQUEST_DATE_FORMAT)}

    async def fetch(self, day: date, max_retries: int | None = None) -> list[PriceRecord]:
        """Fetch and decode all price records published for one day.

        Retry policy (attempts 0..max_retries inclusive):
            - Request errors (transport, redirect loops, undecodable content
              encoding), non-200 status, empty body, HTML body
              (starts with ``<``) and error text (starts with ``E``) are
              retried after ``backoff_seconds * (attempt + 1)`` seconds.
            - A body that decodes as neither known shape fails immediately.

        Args:
            day: Calendar day to fetch.
            max_retries: Retries after the first attempt. Defaults to
                ``UpstreamConfig.max_retries``.

        Returns:
            Records in payload order. May be empty.

        Raises:
            FetchError: If every attempt failed.
            DecodeError: If the body could not be decoded.
        """
        retries = self._config.max_retries if max_retries is None else max_retries
        url = self.build_url(day)
        context = {"date": day.isoformat(), "url": url}
        logger.debug("Querying URL: %s", url)

        for attempt in range(retries + 1):
            attempt_context = {**context, "attempts": attempt + 1}
            try:
                await self._limiter.acquire()
                response = await self._client.get(
                    self._config.base_url, params=self._params(day)
                )
            except httpx.RequestError as e:
                await self._retry_or_raise(
                    day,
                    attempt,
                    retries,
                    reason=f"request error ({type(e).__name__})",
                    error=FetchError(
                        f"Request to the API failed: {e}",
                        context={**attempt_context, "error": str(e)},
                    ),
                    cause=e,
                )
                continue

            if response.status_code != 200:
                await self._retry_or_raise(
                    day,
                    attempt,
                    retries,
                    reason=f"API responded with status {response.status_code}",
                    error=FetchError(
                        f"API responded with status {response.status_code}",
                        context={**attempt_context, "status_code": response.status_code},
                    ),
                )
                continue

            body = response.content
            self._log_response(response)

            if not body:
                await self._retry_or_raise(
                    day,
                    attempt,
                    retries,
                    reason="empty response",
                    error=FetchError("API returned an empty response", context=attempt_context),
                )
                continue

            if body.startswith(b"<"):
                excerpt = response.text[:_HTML_EXCERPT]
                await self._retry_or_raise(
                    day,
                    attempt,
                    retries,
                    reason="HTML response",
                    error=FetchError(
                        f"API returned HTML instead of JSON: {excerpt}",
                        context={**attempt_context, "body": excerpt},
                    ),
                )
                continue

            if body.startswith(b"E"):
                text = response.text
                await self._retry_or_raise(
                    day,
                    attempt,
                    retries,
                    reason=f"API returned error {text!r}",
                    error=FetchError(
                        f"API returned an error message: {text}",
                        context={**attempt_context, "body": text},
                    ),
                )
                continue

            try:
                return decode_records(body)
            except DecodeError as e:
                e.context.update(attempt_context)
                raise

        # Only reachable with a negative retry budget
        raise FetchError(
            f"Request failed after {retries} retries: {url}",
            context={**context, "attempts": 0},
        )

    async def _retry_or_raise(
        self,
        day: date,
        attempt: int,
        retries: int,
        *,
        reason: str,
        error: FetchError,
        cause: BaseException | None = None,
    ) -> None:
        """Sleep before the next attempt, or raise `error` on the last one."""
        if attempt >= retries:
            raise error from cause

        delay = self._config.backoff_seconds * (attempt + 1)
        logger.warning(
            "Retry %d/%d for %s: %s, waiting %g seconds",
            attempt + 1, retries + 1, day.isoformat(), reason, delay,
        )
        await asyncio.sleep(delay)

    @staticmethod
    def _log_response(response: httpx.Response) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(
            "API response (first %d characters): %s",
            _DEBUG_EXCERPT, response.text[:_DEBUG_EXCERPT],
        )
        logger.debug("Response length: %d bytes", len(response.content))
        logger.debug("Content-Type: %s", response.headers.get("Content-Type", ""))
