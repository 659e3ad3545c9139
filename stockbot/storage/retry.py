"""Bounded retry with exponential backoff at the persistence boundary."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Sequence, TypeVar

from stockbot.core.errors import RecordNotFound, StoreError
from stockbot.storage.base import Record, TableStore

T = TypeVar("T")


class RetryingTableStore(TableStore):
    """Wrap another store, adding per-call timeouts and capped retries.

    ``RecordNotFound`` is never retried. Creates are retried like every other
    call, so a create whose response was lost can produce a duplicate row;
    the backing stores offer no idempotency key to prevent that.
    """

    def __init__(
        self,
        inner: TableStore,
        *,
        max_attempts: int = 3,
        backoff_base_ms: int = 200,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.inner = inner
        self.max_attempts = max(1, max_attempts)
        self.backoff_base = max(0, backoff_base_ms) / 1000
        self.timeout_seconds = timeout_seconds
        self._logger = logging.getLogger("stockbot.store")

    async def _call(self, label: str, fn: Callable[[], Awaitable[T]]) -> T:
        attempt = 1
        while True:
            try:
                return await asyncio.wait_for(fn(), timeout=self.timeout_seconds)
            except RecordNotFound:
                raise
            except asyncio.TimeoutError:
                error = StoreError(f"{label} timed out after {self.timeout_seconds}s")
            except StoreError as exc:
                error = exc
            self._logger.warning("%s failed (attempt %s/%s): %s", label, attempt, self.max_attempts, error)
            if attempt >= self.max_attempts:
                self._logger.error("%s giving up after %s attempts", label, self.max_attempts)
                raise error
            await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))
            attempt += 1

    async def find(self, table: str, filters: Mapping[str, Any] | None = None) -> Sequence[Record]:
        return await self._call(f"find {table}", lambda: self.inner.find(table, filters))

    async def get(self, table: str, record_id: str) -> Record | None:
        return await self._call(f"get {table}/{record_id}", lambda: self.inner.get(table, record_id))

    async def create(self, table: str, fields: Mapping[str, Any]) -> Record:
        return await self._call(f"create {table}", lambda: self.inner.create(table, fields))

    async def patch(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        return await self._call(f"patch {table}/{record_id}", lambda: self.inner.patch(table, record_id, fields))

    async def delete(self, table: str, record_id: str) -> None:
        await self._call(f"delete {table}/{record_id}", lambda: self.inner.delete(table, record_id))
