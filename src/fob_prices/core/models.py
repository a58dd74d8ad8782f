"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

Position = str
Circular = str

# --- Constants ---

# Earliest day the upstream service is known to publish prices for.
EPOCH_DATE = date(1993, 1, 4)

DEFAULT_BASE_URL = (
    "https://magyp.gob.ar/sitio/areas/ss_mercados_agropecuarios/ws/ssma/precios_fob.php"
)
TABLE_NAME = "precios_fob"

# Upstream `fecha` format: "YYYY-MM-DD HH:MM:SS.mmm"
RECORD_DATE_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
# Query parameter format: "DD/MM/YYYY"
REQUEST_DATE_FORMAT = "%d/%m/%Y"

# --- Enumerations ---


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


# --- Price Models ---


class PriceRecord(BaseModel):
    """A single FOB price entry as published by the upstream API.

    Field names follow the upstream JSON (`posicion`, `añoDesde`, ...) via
    aliases; attribute names are English. Validity-window and price fields
    are nullable upstream, so completeness is checked separately before a
    record is stored.

    Null or missing text fields decode as empty strings, so a bad record is
    rejected on its own when its date is parsed rather than failing the
    whole payload.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date: str = Field(default="", alias="fecha")
    circular: Circular = ""
    position: Position = Field(default="", alias="posicion")
    price: float | None = Field(default=None, alias="precio")
    month_from: int | None = Field(default=None, alias="mesDesde")
    year_from: int | None = Field(default=None, alias="añoDesde")
    month_to: int | None = Field(default=None, alias="mesHasta")
    year_to: int | None = Field(default=None, alias="añoHasta")

    @field_validator("date", "circular", "position", mode="before")
    @classmethod
    def null_text_as_empty(cls, v: object) -> object:
        return "" if v is None else v

    @property
    def missing_fields(self) -> list[str]:
        """Names of required storage fields that are null."""
        required = {
            "price": self.price,
            "month_from": self.month_from,
            "year_from": self.year_from,
            "month_to": self.month_to,
            "year_to": self.year_to,
        }
        return [name for name, value in required.items() if value is None]


class StoredPriceRow(BaseModel):
    """A complete, storable row of the `precios_fob` table.

    Semantic key is (date, position). Uniqueness is not enforced by the
    table; callers check existence before inserting.
    """

    model_config = ConfigDict(frozen=True)

    date: datetime
    circular: Circular
    position: Position
    price: float
    month_from: int
    year_from: int
    month_to: int
    year_to: int

    @property
    def key(self) -> tuple[datetime, Position]:
        return (self.date, self.position)
