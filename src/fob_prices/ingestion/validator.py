"""Record completeness checks and strict date parsing."""

from __future__ import annotations

import re
from datetime import datetime

from fob_prices.core.exceptions import RecordError
from fob_prices.core.models import RECORD_DATE_FORMAT, PriceRecord, StoredPriceRow

# strptime's %f accepts 1-6 digits; upstream always sends milliseconds.
_RECORD_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3}$")


def is_complete(record: PriceRecord) -> bool:
    """True iff price and the whole validity window are present."""
    return not record.missing_fields


def parse_record_date(value: str) -> datetime:
    """Parse an upstream ``fecha`` string (``YYYY-MM-DD HH:MM:SS.mmm``).

    Raises:
        RecordError: If the string does not match the fixed format exactly
            or names an impossible date.
    """
    if not _RECORD_DATE_RE.match(value):
        raise RecordError(
            f"Malformed record date: {value!r}",
            context={"fecha": value},
        )
    try:
        return datetime.strptime(value, RECORD_DATE_FORMAT)
    except ValueError as e:
        raise RecordError(
            f"Malformed record date: {value!r}",
            context={"fecha": value, "reason": str(e)},
        ) from e


def to_stored_row(record: PriceRecord) -> StoredPriceRow:
    """Validate a record and convert it to a storable row.

    Raises:
        RecordError: If required fields are null or the date is malformed.
    """
    missing = record.missing_fields
    if missing:
        raise RecordError(
            f"Incomplete record for {record.date} / {record.position}: "
            f"missing {', '.join(missing)}",
            context={
                "fecha": record.date,
                "posicion": record.position,
                "missing": missing,
            },
        )

    return StoredPriceRow(
        date=parse_record_date(record.date),
        circular=record.circular,
        position=record.position,
        price=record.price,
        month_from=record.month_from,
        year_from=record.year_from,
        month_to=record.month_to,
        year_to=record.year_to,
    )
