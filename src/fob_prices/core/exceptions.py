"""Custom exception hierarchy for fob-prices."""

from typing import Any


class FobPricesError(Exception):
    """Base exception for all fob-prices errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(FobPricesError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value (redacted for secrets)
    """


class IngestionError(FobPricesError):
    """Failed to fetch or decode one day of upstream data.

    Policy: log and skip the day. Do not abort the run.

    Context keys:
        date (str): the calendar day being fetched (YYYY-MM-DD)
        url (str): the URL that was being fetched
    """


class FetchError(IngestionError):
    """Upstream request failed after the retry budget was exhausted.

    Policy: retried with linear backoff inside FobClient; surfaces only
    once every attempt has failed.

    Context keys:
        attempts (int): number of attempts made
        status_code (int | None): last HTTP status, if any
        body (str | None): body excerpt for HTML/error-text responses
    """


class DecodeError(IngestionError):
    """Response body matched neither known payload shape.

    Policy: terminal for the day. Not retried.

    Context keys:
        reason (str): why decoding failed
    """


class RecordError(FobPricesError):
    """A single upstream record cannot be stored.

    Policy: log and skip the record. Other records of the day are unaffected.

    Context keys:
        fecha (str): the raw date string
        posicion (str): the position key
    """


class StorageError(FobPricesError):
    """Database operation failed.

    Policy: fatal during startup (connect, max-date lookup); per-record
    existence checks and inserts are logged and skipped.

    Context keys:
        operation (str): "connect", "query", "insert", etc.
        table (str): the table involved
    """
