"""fob_prices.core: Foundation types, config, and exceptions."""

from fob_prices.core.config import (
    FobConfig,
    IngestConfig,
    PostgresSettings,
    StorageConfig,
    UpstreamConfig,
    load_config,
)
from fob_prices.core.exceptions import (
    ConfigError,
    DecodeError,
    FetchError,
    FobPricesError,
    IngestionError,
    RecordError,
    StorageError,
)
from fob_prices.core.models import (
    EPOCH_DATE,
    Circular,
    Position,
    PriceRecord,
    StorageBackend,
    StoredPriceRow,
)

__all__ = [
    # Type aliases
    "Circular",
    "Position",
    # Constants
    "EPOCH_DATE",
    # Enums
    "StorageBackend",
    # Price models
    "PriceRecord",
    "StoredPriceRow",
    # Config
    "FobConfig",
    "UpstreamConfig",
    "StorageConfig",
    "PostgresSettings",
    "IngestConfig",
    "load_config",
    # Exceptions
    "FobPricesError",
    "ConfigError",
    "IngestionError",
    "FetchError",
    "DecodeError",
    "RecordError",
    "StorageError",
]
