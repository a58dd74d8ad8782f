"""FOB price ingestion: client, decoder, validator, storage, and runner."""

from fob_prices.ingestion.client import FobClient
from fob_prices.ingestion.decoder import decode_records
from fob_prices.ingestion.runner import DayResult, IngestionRunner, RunSummary
from fob_prices.ingestion.store import (
    PostgresStore,
    PriceStoreProtocol,
    SqliteStore,
    create_store,
)
from fob_prices.ingestion.validator import is_complete, parse_record_date, to_stored_row

__all__ = [
    "FobClient",
    "decode_records",
    "is_complete",
    "parse_record_date",
    "to_stored_row",
    "PriceStoreProtocol",
    "SqliteStore",
    "PostgresStore",
    "create_store",
    "IngestionRunner",
    "DayResult",
    "RunSummary",
]
