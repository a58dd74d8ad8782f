"""Incremental daily ingestion of FOB prices.

Resume point: the day after ``MAX(date)`` in storage, or the epoch date when
the table is empty. Each day from there through today is fetched, validated
and inserted record by record. Per-day and per-record failures are logged
and skipped; only storage failures while resolving the resume point abort
the run.

A day that fetched nothing usable does not move the resume point, so once a
later day inserts rows, the failed day falls behind the cursor and is not
retried by subsequent runs.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Protocol, runtime_checkable

from fob_prices.core.exceptions import IngestionError, RecordError, StorageError
from fob_prices.core.models import EPOCH_DATE, PriceRecord
from fob_prices.ingestion.store import PriceStoreProtocol
from fob_prices.ingestion.validator import is_complete, to_stored_row

logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)


@runtime_checkable
class PriceFetcher(Protocol):
    """Anything that can fetch one day of price records."""

    async def fetch(self, day: date, max_retries: int | None = None) -> list[PriceRecord]: ...


@dataclass(frozen=True)
class DayResult:
    """Outcome of processing a single calendar day."""

    day: date
    fetched: int = 0
    inserted: int = 0
    skipped_incomplete: int = 0
    skipped_bad_date: int = 0
    skipped_existing: int = 0
    failed_rows: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class RunSummary:
    """Totals for one ingestion run.

    Only days that inserted rows or failed are kept in `days`; empty days
    are counted in `days_processed` only.
    """

    start_date: date
    end_date: date
    days_processed: int = 0
    days_failed: int = 0
    inserted: int = 0
    days: list[DayResult] = field(default_factory=list)

    def add(self, result: DayResult) -> None:
        self.days_processed += 1
        self.inserted += result.inserted
        if result.failed:
            self.days_failed += 1
        if result.failed or result.inserted:
            self.days.append(result)

    @property
    def failed_days(self) -> list[date]:
        return [r.day for r in self.days if r.failed]


class IngestionRunner:
    """Drives the day-by-day import from the resume point through today.

    Single-threaded: days are processed in ascending order and records in
    payload order, one storage round-trip at a time.
    """

    def __init__(
        self,
        client: PriceFetcher,
        store: PriceStoreProtocol,
        epoch_date: date = EPOCH_DATE,
        max_retries: int = 3,
    ) -> None:
        self._client = client
        self._store = store
        self._epoch_date = epoch_date
        self._max_retries = max_retries

    async def resolve_start_date(self) -> date:
        """First day to fetch.

        Raises:
            StorageError: If the latest stored date cannot be read.
        """
        latest = await self._store.get_max_date()
        if latest is None:
            return self._epoch_date
        return latest.date() + _ONE_DAY

    async def run(self, today: date | None = None) -> RunSummary:
        """Import every day from the resume point through `today` (inclusive).

        Args:
            today: Last day to fetch. Defaults to the local current date.

        Returns:
            RunSummary whose `inserted` is the total rows inserted.

        Raises:
            StorageError: If the resume point cannot be determined.
        """
        end = today or date.today()
        start = await self.resolve_start_date()
        summary = RunSummary(start_date=start, end_date=end)
        logger.info("Starting FOB price import from %s to %s", start, end)

        day = start
        while day <= end:
            result = await self.process_day(day)
            summary.add(result)
            if result.inserted:
                logger.info("Inserted date: %s", day.isoformat())
            day += _ONE_DAY

        logger.info("Import finished. Rows inserted: %d", summary.inserted)
        return summary

    async def process_day(self, day: date) -> DayResult:
        """Fetch one day and store every new, complete record."""
        try:
            records = await self._client.fetch(day, self._max_retries)
        except IngestionError as e:
            logger.error("Error querying %s: %s", day.isoformat(), e)
            return DayResult(day=day, error=str(e))

        if not records:
            return DayResult(day=day)

        outcomes: Counter[str] = Counter()
        for record in records:
            outcomes[await self._store_record(record)] += 1

        return DayResult(
            day=day,
            fetched=len(records),
            inserted=outcomes["inserted"],
            skipped_incomplete=outcomes["incomplete"],
            skipped_bad_date=outcomes["bad_date"],
            skipped_existing=outcomes["existing"],
            failed_rows=outcomes["failed"],
        )

    async def _store_record(self, record: PriceRecord) -> str:
        """Store one record if it is complete and new. Returns the outcome."""
        if not is_complete(record):
            logger.warning(
                "Incomplete row (null price or validity window) for %s / %s. Skipped.",
                record.date, record.position,
            )
            return "incomplete"

        try:
            row = to_stored_row(record)
        except RecordError:
            logger.warning("Malformed date: %s", record.date)
            return "bad_date"

        try:
            if await self._store.exists(*row.key):
                return "existing"
        except StorageError as e:
            logger.error("Error checking for duplicate %s / %s: %s", record.date, record.position, e)
            return "failed"

        try:
            await self._store.insert(row)
        except StorageError as e:
            logger.error("Error inserting row %s / %s: %s", record.date, record.position, e)
            return "failed"
        return "inserted"
