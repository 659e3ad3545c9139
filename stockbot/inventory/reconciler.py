"""Apply parsed updates to stored stock levels."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, Literal

from stockbot.core.errors import RecordNotFound, StoreError
from stockbot.core.locks import KeyedLock
from stockbot.inventory.ledger import BatchLedger
from stockbot.inventory.models import BatchRecord, InventoryRecord
from stockbot.parsing.types import Action, ParsedUpdate
from stockbot.parsing.units import convert, normalize_unit, tidy
from stockbot.storage.base import INVENTORY_TABLE, TableStore

logger = logging.getLogger("stockbot.reconciler")

SaleLotPolicy = Literal["fifo", "ask", "none"]


@dataclass(slots=True)
class AppliedUpdate:
    """Outcome of one successful stock mutation."""

    product: str
    delta: float
    new_quantity: float
    unit: str
    action: Action | None = None
    batch_date: date | None = None
    lots: list[dict[str, Any]] = field(default_factory=list)
    lot_choices: list[BatchRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "product": self.product,
            "delta": self.delta,
            "new_quantity": self.new_quantity,
            "unit": self.unit,
        }
        if self.batch_date is not None:
            item["batch_date"] = self.batch_date.isoformat()
        if self.lots:
            item["lots"] = self.lots
        return item


@dataclass(slots=True)
class FailedUpdate:
    product: str
    delta: float
    unit: str | None
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"product": self.product, "delta": self.delta, "unit": self.unit, "error": self.error}


@dataclass(slots=True)
class BulkItem:
    """One independent adjustment; ``unit=None`` keeps the stored unit."""

    shop_id: str
    product: str
    delta: float
    unit: str | None = None


@dataclass(slots=True)
class BulkResult:
    succeeded: list[AppliedUpdate] = field(default_factory=list)
    failed: list[FailedUpdate] = field(default_factory=list)


class InventoryReconciler:
    """Merge signed deltas into the per-(shop, product) inventory row.

    Stored quantities are converted into the unit of the incoming update, so
    the stored unit follows the most recent write. Rows are rewritten by
    delete-then-insert; see :meth:`_replace_inventory_row`.
    """

    def __init__(
        self,
        store: TableStore,
        ledger: BatchLedger,
        *,
        sale_lot_policy: SaleLotPolicy = "fifo",
        remaining_is_absolute: bool = False,
        default_unit: str = "pieces",
        today: Callable[[], date] | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.sale_lot_policy = sale_lot_policy
        self.remaining_is_absolute = remaining_is_absolute
        self.default_unit = default_unit
        self.today = today or ledger.today
        self.locks = locks or KeyedLock()

    async def apply(self, shop_id: str, update: ParsedUpdate) -> AppliedUpdate:
        """Apply one parsed clause, including lot bookkeeping for purchases and sales."""

        async with self.locks.hold((shop_id, update.product)):
            applied = await self._adjust(shop_id, update.product, update.quantity, update.unit, update.action)

            if update.action is Action.PURCHASED and applied.delta > 0:
                batch = await self.ledger.create_or_increment_batch(
                    shop_id, update.product, applied.delta, applied.unit, self.today()
                )
                applied.batch_date = batch.purchase_date
            elif update.action is Action.SOLD and applied.delta < 0:
                await self._attribute_sale(shop_id, applied)
        return applied

    async def _attribute_sale(self, shop_id: str, applied: AppliedUpdate) -> None:
        sold = -applied.delta
        if self.sale_lot_policy == "none":
            return

        if self.sale_lot_policy == "ask":
            lots = await self.ledger.open_batches(shop_id, applied.product)
            if len(lots) > 1:
                applied.lot_choices = lots
                return
            if lots:
                lot = await self.ledger.update_batch_quantity_by_composite_key(
                    lots[0].composite_key, -sold, applied.unit
                )
                applied.lots = [{"batch_id": lot.id, "purchase_date": lot.purchase_date.isoformat(), "quantity": sold}]
            return

        consumption = await self.ledger.consume_fifo(shop_id, applied.product, sold, applied.unit)
        applied.lots = consumption.to_dict()

    async def _adjust(
        self,
        shop_id: str,
        product: str,
        delta: float,
        unit: str | None,
        action: Action | None = None,
    ) -> AppliedUpdate:
        existing = await self.store.find_one(INVENTORY_TABLE, {"shop_id": shop_id, "product": product})
        current = InventoryRecord.from_record(existing) if existing else None

        if unit:
            target_unit = normalize_unit(unit, self.default_unit)
        elif current is not None:
            target_unit = current.unit
        else:
            target_unit = self.default_unit

        current_quantity = convert(current.quantity, current.unit, target_unit) if current else 0
        if action is Action.REMAINING and self.remaining_is_absolute:
            new_quantity = tidy(abs(delta))
            delta = tidy(new_quantity - current_quantity)
        else:
            new_quantity = tidy(current_quantity + delta)

        replacement = InventoryRecord(
            shop_id=shop_id,
            product=product,
            quantity=new_quantity,
            unit=target_unit,
            batch_ids=list(current.batch_ids) if current else [],
        )
        await self._replace_inventory_row(current, replacement)
        logger.info("%s/%s: %+g %s -> %s %s", shop_id, product, delta, target_unit, new_quantity, target_unit)
        return AppliedUpdate(
            product=product,
            delta=tidy(delta),
            new_quantity=new_quantity,
            unit=target_unit,
            action=action,
        )

    async def _replace_inventory_row(
        self, current: InventoryRecord | None, replacement: InventoryRecord
    ) -> InventoryRecord:
        """Delete the old row and insert ``replacement``.

        The two calls are not atomic. If the insert fails after the delete
        succeeded the row is gone; its intended values are logged at ERROR so
        an operator can restore them. The new row gets a new id, so linked
        lots are re-pointed at it.
        """

        if current is not None and current.id:
            try:
                await self.store.delete(INVENTORY_TABLE, current.id)
            except RecordNotFound:
                logger.warning("Inventory row %s was already gone", current.id)

        try:
            created = await self.store.create(INVENTORY_TABLE, replacement.to_fields())
        except StoreError:
            logger.error(
                "Inventory row lost for %s/%s: quantity=%s unit=%s batch_ids=%s",
                replacement.shop_id,
                replacement.product,
                replacement.quantity,
                replacement.unit,
                replacement.batch_ids,
            )
            raise
        replacement.id = created.id
        if replacement.batch_ids:
            await self.ledger.relink_batches(replacement.batch_ids, created.id)
        return replacement

    async def bulk_update(self, items: Iterable[BulkItem]) -> BulkResult:
        """Apply independent adjustments concurrently; one failure never aborts the rest."""

        items = list(items)
        outcomes = await asyncio.gather(*(self._apply_bulk_item(item) for item in items), return_exceptions=True)

        result = BulkResult()
        for item, outcome in zip(items, outcomes):
            if isinstance(outcome, AppliedUpdate):
                result.succeeded.append(outcome)
            elif isinstance(outcome, Exception):
                logger.error("Bulk update failed for %s/%s: %s", item.shop_id, item.product, outcome)
                result.failed.append(FailedUpdate(item.product, item.delta, item.unit, str(outcome)))
            else:
                raise outcome
        logger.info("Bulk update: %d succeeded, %d failed", len(result.succeeded), len(result.failed))
        return result

    async def _apply_bulk_item(self, item: BulkItem) -> AppliedUpdate:
        async with self.locks.hold((item.shop_id, item.product)):
            return await self._adjust(item.shop_id, item.product, item.delta, item.unit)

    async def current_inventory(self, shop_id: str) -> list[InventoryRecord]:
        records = await self.store.find(INVENTORY_TABLE, {"shop_id": shop_id})
        rows = [InventoryRecord.from_record(record) for record in records]
        rows.sort(key=lambda row: row.product.lower())
        return rows

    async def low_stock(self, shop_id: str, threshold: float = 5) -> list[InventoryRecord]:
        """Products at or below ``threshold`` in their stored unit."""

        return [row for row in await self.current_inventory(shop_id) if row.quantity <= threshold]
