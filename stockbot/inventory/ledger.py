"""Expiry-dated purchase lots and their bookkeeping."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable

from stockbot.core.errors import LotNotFound, RecordNotFound, StoreError
from stockbot.core.locks import KeyedLock
from stockbot.core.metrics import MetricsCollector
from stockbot.inventory.models import BatchRecord, InventoryRecord, composite_key, split_composite_key
from stockbot.parsing.units import convert, normalize_unit, tidy
from stockbot.storage.base import BATCH_TABLE, INVENTORY_TABLE, TableStore

logger = logging.getLogger("stockbot.ledger")


@dataclass(slots=True)
class FifoConsumption:
    """Lots drawn down by one sale, oldest first, and any quantity no lot covered."""

    lots: list[tuple[BatchRecord, float]] = field(default_factory=list)
    unattributed: float = 0

    def to_dict(self) -> list[dict]:
        return [
            {"batch_id": lot.id, "purchase_date": lot.purchase_date.isoformat(), "quantity": amount}
            for lot, amount in self.lots
        ]


class BatchLedger:
    """Create, adjust and query purchase lots.

    Lots are patched in place, unlike inventory rows which are recreated on
    every write. Quantities never go below zero.
    """

    def __init__(
        self,
        store: TableStore,
        *,
        settle_seconds: float = 0.5,
        metrics: MetricsCollector | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.settle_seconds = settle_seconds
        self.metrics = metrics
        self.today = today
        self._locks = KeyedLock()

    async def create_or_increment_batch(
        self,
        shop_id: str,
        product: str,
        quantity: float,
        unit: str,
        purchase_date: date | None = None,
        price: float | None = None,
    ) -> BatchRecord:
        purchase_date = purchase_date or self.today()
        key = composite_key(shop_id, product, purchase_date)

        async with self._locks.hold(key):
            existing = await self.store.find_one(BATCH_TABLE, {"composite_key": key})
            if existing is not None:
                batch = BatchRecord.from_record(existing)
                batch.quantity = tidy(batch.quantity + convert(quantity, unit, batch.unit))
                changes: dict = {"quantity": batch.quantity}
                if price is not None:
                    batch.purchase_price = price
                    batch.purchase_value = tidy(price * batch.quantity)
                    changes.update(purchase_price=batch.purchase_price, purchase_value=batch.purchase_value)
                await self.store.patch(BATCH_TABLE, existing.id, changes)
                logger.info("Lot %s increased to %s %s", key, batch.quantity, batch.unit)
                return batch

            owner = await self.store.find_one(INVENTORY_TABLE, {"shop_id": shop_id, "product": product})
            batch = BatchRecord(
                shop_id=shop_id,
                product=product,
                quantity=tidy(quantity),
                unit=normalize_unit(unit),
                purchase_date=purchase_date,
                purchase_price=price,
                purchase_value=tidy(price * quantity) if price is not None else None,
                linked_inventory_id=owner.id if owner else None,
            )
            created = await self.store.create(BATCH_TABLE, batch.to_fields())
            batch.id = created.id
            logger.info("Lot %s created with %s %s", key, batch.quantity, batch.unit)

            if owner is not None:
                await self._link(owner.id, InventoryRecord.from_record(owner), batch.id)
            return batch

    async def _link(self, inventory_id: str, inventory: InventoryRecord, batch_id: str) -> None:
        if batch_id in inventory.batch_ids:
            return
        try:
            await self.store.patch(INVENTORY_TABLE, inventory_id, {"batch_ids": [*inventory.batch_ids, batch_id]})
        except RecordNotFound:
            logger.warning("Inventory row %s vanished before lot %s could be linked", inventory_id, batch_id)

    async def relink_batches(self, batch_ids: list[str], inventory_id: str) -> None:
        """Point existing lots at the inventory row that replaced their old one."""

        for batch_id in batch_ids:
            try:
                await self.store.patch(BATCH_TABLE, batch_id, {"linked_inventory_id": inventory_id})
            except RecordNotFound:
                logger.warning("Lot %s is gone; not relinking it to %s", batch_id, inventory_id)

    async def update_batch_quantity(self, batch_id: str, delta: float, unit: str) -> BatchRecord:
        record = await self.store.get(BATCH_TABLE, batch_id)
        if record is None:
            raise LotNotFound(batch_id)

        batch = BatchRecord.from_record(record)
        batch.quantity = tidy(max(0, batch.quantity + convert(delta, unit, batch.unit)))
        try:
            await self.store.patch(BATCH_TABLE, batch_id, {"quantity": batch.quantity})
        except RecordNotFound as exc:
            raise LotNotFound(batch_id) from exc
        return batch

    async def update_batch_quantity_by_composite_key(self, key: str, delta: float, unit: str) -> BatchRecord:
        """Adjust the lot at ``key``, recreating it first if it has disappeared."""

        async with self._locks.hold(key):
            existing = await self.store.find_one(BATCH_TABLE, {"composite_key": key})
            if existing is not None:
                try:
                    return await self.update_batch_quantity(existing.id, delta, unit)
                except LotNotFound:
                    logger.warning("Lot %s disappeared during update", key)
            return await self._self_heal(key, delta, unit)

    async def _self_heal(self, key: str, delta: float, unit: str) -> BatchRecord:
        shop_id, product, purchase_date = split_composite_key(key)
        logger.warning("Recreating missing lot %s", key)
        if self.metrics is not None:
            self.metrics.record_self_heal()

        placeholder = BatchRecord(
            shop_id=shop_id,
            product=product,
            quantity=0,
            unit=normalize_unit(unit),
            purchase_date=purchase_date,
        )
        created = await self.store.create(BATCH_TABLE, placeholder.to_fields())
        if self.settle_seconds > 0:
            await asyncio.sleep(self.settle_seconds)

        refetched = await self.store.get(BATCH_TABLE, created.id)
        if refetched is None:
            refetched = await self.store.find_one(BATCH_TABLE, {"composite_key": key})
        if refetched is None:
            raise StoreError(f"recreated lot {key} could not be read back")
        return await self.update_batch_quantity(refetched.id, delta, unit)

    async def list_batches(self, shop_id: str, product: str | None = None) -> list[BatchRecord]:
        """Lots for a shop, newest purchase first."""

        filters = {"shop_id": shop_id}
        if product:
            filters["product"] = product
        records = await self.store.find(BATCH_TABLE, filters)
        batches = [BatchRecord.from_record(record) for record in records]
        batches.sort(key=lambda batch: batch.purchase_date, reverse=True)
        return batches

    async def open_batches(self, shop_id: str, product: str) -> list[BatchRecord]:
        """Non-empty, non-expired lots, newest first."""

        today = self.today()
        return [
            batch
            for batch in await self.list_batches(shop_id, product)
            if batch.quantity > 0 and not batch.is_expired(today)
        ]

    async def update_batch_expiry(self, batch_id: str, expiry_date: date) -> BatchRecord:
        try:
            record = await self.store.patch(BATCH_TABLE, batch_id, {"expiry_date": expiry_date.isoformat()})
        except RecordNotFound as exc:
            raise LotNotFound(batch_id) from exc
        logger.info("Lot %s expires on %s", batch_id, expiry_date.isoformat())
        return BatchRecord.from_record(record)

    async def expiring_batches(self, shop_id: str, within_days: int = 7) -> list[BatchRecord]:
        """Stocked lots whose expiry date falls on or before ``today + within_days``."""

        cutoff = self.today() + timedelta(days=within_days)
        batches = [
            batch
            for batch in await self.list_batches(shop_id)
            if batch.quantity > 0 and batch.expiry_date is not None and batch.expiry_date <= cutoff
        ]
        batches.sort(key=lambda batch: batch.expiry_date)
        return batches

    async def consume_fifo(self, shop_id: str, product: str, quantity: float, unit: str) -> FifoConsumption:
        """Draw ``quantity`` (a positive amount in ``unit``) from the oldest open lots."""

        result = FifoConsumption()
        remaining = abs(quantity)
        for lot in reversed(await self.open_batches(shop_id, product)):
            if remaining <= 0:
                break
            available = convert(lot.quantity, lot.unit, unit)
            take = tidy(min(available, remaining))
            if take <= 0:
                continue
            updated = await self.update_batch_quantity_by_composite_key(lot.composite_key, -take, unit)
            result.lots.append((updated, take))
            remaining = tidy(remaining - take)

        if remaining > 0:
            result.unattributed = remaining
            logger.info("%s %s of %s sold beyond tracked lots", remaining, unit, product)
        return result
