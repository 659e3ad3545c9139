"""Storage package exports."""

from .base import BATCH_TABLE, INVENTORY_TABLE, PREFERENCES_TABLE, Record, TableStore
from .retry import RetryingTableStore
from .sqlite import SQLiteTableStore

__all__ = [
    "BATCH_TABLE",
    "INVENTORY_TABLE",
    "PREFERENCES_TABLE",
    "Record",
    "TableStore",
    "RetryingTableStore",
    "SQLiteTableStore",
]
