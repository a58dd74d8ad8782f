"""Tolerant decoding of the FOB price response body.

The upstream service answers either with a wrapped object,
``{"posts": [...]}``, or with a bare JSON array of records. A bare JSON
``null`` reads as a wrapped object with no posts. Candidate
shapes are tried in order and the first structural match wins.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from fob_prices.core.exceptions import DecodeError
from fob_prices.core.models import PriceRecord

logger = logging.getLogger(__name__)


class WrappedPayload(BaseModel):
    """Object shape. A missing or null ``posts`` field decodes as no records."""

    model_config = ConfigDict(frozen=True)

    posts: list[PriceRecord] | None = None


# Order matters: an object is never re-read as a bare list.
_CANDIDATES: list[tuple[str, TypeAdapter[Any]]] = [
    ("wrapped", TypeAdapter(WrappedPayload | None)),
    ("list", TypeAdapter(list[PriceRecord])),
]


def decode_records(body: bytes | str) -> list[PriceRecord]:
    """Decode a response body into price records.

    Args:
        body: Raw response body (JSON).

    Returns:
        Records in payload order. May be empty.

    Raises:
        DecodeError: If the body matches neither the wrapped-object nor the
            bare-list shape.
    """
    failures: dict[str, str] = {}
    for shape, adapter in _CANDIDATES:
        try:
            payload = adapter.validate_json(body)
        except ValidationError as e:
            failures[shape] = _summarize(e)
            continue

        records = _records_from(payload)
        logger.debug("Decoded %s payload with %d records", shape, len(records))
        return records

    for shape, reason in failures.items():
        logger.debug("Payload is not a %s shape: %s", shape, reason)
    raise DecodeError(
        "Could not decode response as an object or as an array",
        context={"reason": "; ".join(f"{k}: {v}" for k, v in failures.items())},
    )


def _records_from(payload: WrappedPayload | list[PriceRecord] | None) -> list[PriceRecord]:
    if payload is None:
        return []
    if isinstance(payload, WrappedPayload):
        return list(payload.posts or [])
    return list(payload)


def _summarize(error: ValidationError) -> str:
    """First validation error as ``loc: msg``."""
    first = error.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    return f"{loc}: {first.get('msg', '')}"
