"""Storage backend: Protocol definition, SQLite and PostgreSQL implementations, factory.

Existence checks and inserts are separate statements and are not wrapped in
a transaction; the table carries no uniqueness constraint on
(date, posicion). Two concurrent runs could therefore insert the same key
twice. The ingester is meant to run as a single scheduled process.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiosqlite
import asyncpg

from fob_prices.core.config import StorageConfig
from fob_prices.core.exceptions import StorageError
from fob_prices.core.models import StorageBackend, StoredPriceRow

logger = logging.getLogger(__name__)

_COLUMNS = "date, circular, posicion, precio, mes_desde, ano_desde, mes_hasta, ano_hasta"


@runtime_checkable
class PriceStoreProtocol(Protocol):
    """Abstract storage interface for FOB price rows."""

    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...
    async def get_max_date(self) -> datetime | None: ...
    async def exists(self, row_date: datetime, position: str) -> bool: ...
    async def insert(self, row: StoredPriceRow) -> None: ...
    async def count_rows(self) -> int: ...


class SqliteStore:
    """SQLite implementation of the storage protocol.

    Dates are stored as ISO-8601 text with millisecond precision, so
    ``MAX(date)`` orders chronologically.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._table = config.table
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection and create the price table if missing."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute(
                f"""CREATE TABLE IF NOT EXISTS {self._table} (
                    date TEXT NOT NULL,
                    circular TEXT,
                    posicion TEXT NOT NULL,
                    precio REAL NOT NULL,
                    mes_desde INTEGER NOT NULL,
                    ano_desde INTEGER NOT NULL,
                    mes_hasta INTEGER NOT NULL,
                    ano_hasta INTEGER NOT NULL
                )"""
            )
            await self._db.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self._table}_date_posicion "
                f"ON {self._table}(date, posicion)"
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "connect", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    async def get_max_date(self) -> datetime | None:
        try:
            async with self._db.execute(f"SELECT MAX(date) FROM {self._table}") as cursor:
                row = await cursor.fetchone()
            if row is None or row[0] is None:
                return None
            return datetime.fromisoformat(row[0])
        except Exception as e:
            raise StorageError(
                f"Failed to query latest date: {e}",
                context={"operation": "query", "table": self._table},
            ) from e

    async def exists(self, row_date: datetime, position: str) -> bool:
        try:
            async with self._db.execute(
                f"SELECT EXISTS(SELECT 1 FROM {self._table} WHERE date = ? AND posicion = ?)",
                (_to_text(row_date), position),
            ) as cursor:
                row = await cursor.fetchone()
            return bool(row[0])
        except Exception as e:
            raise StorageError(
                f"Failed to check row existence: {e}",
                context={
                    "operation": "query",
                    "table": self._table,
                    "date": _to_text(row_date),
                    "posicion": position,
                },
            ) from e

    async def insert(self, row: StoredPriceRow) -> None:
        try:
            await self._db.execute(
                f"INSERT INTO {self._table} ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    _to_text(row.date),
                    row.circular,
                    row.position,
                    row.price,
                    row.month_from,
                    row.year_from,
                    row.month_to,
                    row.year_to,
                ),
            )
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to insert row: {e}",
                context={
                    "operation": "insert",
                    "table": self._table,
                    "date": _to_text(row.date),
                    "posicion": row.position,
                },
            ) from e

    async def count_rows(self) -> int:
        try:
            async with self._db.execute(f"SELECT COUNT(*) FROM {self._table}") as cursor:
                row = await cursor.fetchone()
            return row[0]
        except Exception as e:
            raise StorageError(
                f"Failed to count rows: {e}",
                context={"operation": "query", "table": self._table},
            ) from e


class PostgresStore:
    """PostgreSQL implementation of the storage protocol.

    Uses a single asyncpg connection. The table is expected to exist; this
    store never creates or alters schema.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._dsn = config.dsn
        self._table = config.table
        self._conn: asyncpg.Connection | None = None

    async def initialize(self) -> None:
        """Open the connection."""
        try:
            self._conn = await asyncpg.connect(self._dsn)
        except Exception as e:
            raise StorageError(
                f"Could not connect to the database: {e}",
                context={"operation": "connect", "table": self._table},
            ) from e

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def health_check(self) -> bool:
        if self._conn is None:
            return False
        try:
            return await self._conn.fetchval("SELECT 1") == 1
        except Exception:
            return False

    async def get_max_date(self) -> datetime | None:
        try:
            value = await self._conn.fetchval(f"SELECT MAX(date) FROM {self._table}")
        except Exception as e:
            raise StorageError(
                f"Failed to query latest date: {e}",
                context={"operation": "query", "table": self._table},
            ) from e
        if value is None:
            return None
        if not isinstance(value, datetime):
            # DATE column
            return datetime(value.year, value.month, value.day)
        return value

    async def exists(self, row_date: datetime, position: str) -> bool:
        try:
            return await self._conn.fetchval(
                f"SELECT EXISTS(SELECT 1 FROM {self._table} WHERE date = $1 AND posicion = $2)",
                row_date,
                position,
            )
        except Exception as e:
            raise StorageError(
                f"Failed to check row existence: {e}",
                context={
                    "operation": "query",
                    "table": self._table,
                    "date": row_date.isoformat(),
                    "posicion": position,
                },
            ) from e

    async def insert(self, row: StoredPriceRow) -> None:
        try:
            await self._conn.execute(
                f"INSERT INTO {self._table} ({_COLUMNS}) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8)",
                row.date,
                row.circular,
                row.position,
                row.price,
                row.month_from,
                row.year_from,
                row.month_to,
                row.year_to,
            )
        except Exception as e:
            raise StorageError(
                f"Failed to insert row: {e}",
                context={
                    "operation": "insert",
                    "table": self._table,
                    "date": row.date.isoformat(),
                    "posicion": row.position,
                },
            ) from e

    async def count_rows(self) -> int:
        try:
            return await self._conn.fetchval(f"SELECT COUNT(*) FROM {self._table}")
        except Exception as e:
            raise StorageError(
                f"Failed to count rows: {e}",
                context={"operation": "query", "table": self._table},
            ) from e


def _to_text(value: date) -> str:
    """ISO text used as the SQLite date key."""
    if isinstance(value, datetime):
        return value.isoformat(sep=" ", timespec="milliseconds")
    return datetime(value.year, value.month, value.day).isoformat(
        sep=" ", timespec="milliseconds"
    )


async def create_store(config: StorageConfig) -> PriceStoreProtocol:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackend.SQLITE:
        store: PriceStoreProtocol = SqliteStore(config)
    elif config.backend == StorageBackend.POSTGRESQL:
        store = PostgresStore(config)
    else:
        raise StorageError(
            f"Unsupported storage backend: {config.backend}",
            context={"operation": "create_store", "backend": str(config.backend)},
        )
    await store.initialize()
    logger.debug("Opened %s store", config.backend.value)
    return store
