"""Minimal tabular store abstraction shared by every backend.

The store offers filtered find, get, create, patch-by-id and delete-by-id.
There are no transactions and no compare-and-swap; callers that need
read-modify-write consistency serialize through :class:`stockbot.core.locks.KeyedLock`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

INVENTORY_TABLE = "inventory"
BATCH_TABLE = "batches"
PREFERENCES_TABLE = "preferences"


@dataclass(slots=True)
class Record:
    """One row: backend-assigned id plus its field mapping."""

    id: str
    fields: dict[str, Any] = field(default_factory=dict)


class TableStore(ABC):
    """Abstract interface for reading and writing tabular records."""

    @abstractmethod
    async def find(self, table: str, filters: Mapping[str, Any] | None = None) -> Sequence[Record]:
        """Return records whose fields equal every value in ``filters``."""

    @abstractmethod
    async def get(self, table: str, record_id: str) -> Record | None:
        """Return a single record or ``None`` when it does not exist."""

    @abstractmethod
    async def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        """Insert a record and return it with its assigned id."""

    @abstractmethod
    async def patch(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Merge ``fields`` into an existing record; raise ``RecordNotFound`` if absent."""

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> None:
        """Remove a record; raise ``RecordNotFound`` if absent."""

    async def find_one(self, table: str, filters: Mapping[str, Any]) -> Record | None:
        records = await self.find(table, filters)
        return records[0] if records else None

    async def ping(self) -> bool:
        """Cheap reachability probe used by the readiness endpoint."""

        await self.find(INVENTORY_TABLE, {"shop_id": "__ping__"})
        return True
