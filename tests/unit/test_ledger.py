import asyncio
from datetime import date

import pytest

from stockbot.core.errors import LotNotFound
from stockbot.inventory.models import composite_key, split_composite_key
from stockbot.storage.base import BATCH_TABLE, INVENTORY_TABLE

D1 = date(2026, 3, 1)
D2 = date(2026, 3, 5)
D3 = date(2026, 3, 8)


def test_composite_key_round_trip_with_pipe_in_product():
    key = composite_key("shop-1", "Tea | Masala", D1)

    assert key == "shop-1|Tea | Masala|2026-03-01"
    assert split_composite_key(key) == ("shop-1", "Tea | Masala", D1)


def test_same_day_purchases_accumulate_into_one_lot(ledger, table_store):
    async def run():
        await ledger.create_or_increment_batch("shop-1", "Sugar", 5, "kg", D1)
        await ledger.create_or_increment_batch("shop-1", "Sugar", 500, "g", D1)
        return await table_store.find(BATCH_TABLE, {"shop_id": "shop-1"})

    records = asyncio.run(run())

    assert len(records) == 1
    assert records[0].fields["quantity"] == 5.5
    assert records[0].fields["unit"] == "kg"


def test_purchase_value_uses_price(ledger):
    batch = asyncio.run(ledger.create_or_increment_batch("shop-1", "Milk", 4, "l", D1, price=30))

    assert batch.purchase_value == 120
    assert batch.composite_key == "shop-1|Milk|2026-03-01"


def test_new_lot_is_linked_to_inventory_row(ledger, table_store):
    async def run():
        row = await table_store.create(
            INVENTORY_TABLE,
            {"shop_id": "shop-1", "product": "Milk", "quantity": 4, "unit": "l", "batch_ids": []},
        )
        batch = await ledger.create_or_increment_batch("shop-1", "Milk", 4, "l", D1)
        await ledger.create_or_increment_batch("shop-1", "Milk", 1, "l", D1)
        return batch, await table_store.get(INVENTORY_TABLE, row.id)

    batch, row = asyncio.run(run())

    assert batch.linked_inventory_id == row.id
    assert row.fields["batch_ids"] == [batch.id]


def test_lot_quantity_is_clamped_at_zero(ledger):
    async def run():
        batch = await ledger.create_or_increment_batch("shop-1", "Maggi", 10, "pieces", D1)
        return await ledger.update_batch_quantity(batch.id, -25, "pieces")

    assert asyncio.run(run()).quantity == 0


def test_missing_lot_id_raises(ledger):
    with pytest.raises(LotNotFound):
        asyncio.run(ledger.update_batch_quantity("recmissing", -1, "pieces"))


def test_self_heal_recreates_deleted_lot(ledger, table_store, metrics):
    async def run():
        batch = await ledger.create_or_increment_batch("shop-1", "Maggi", 10, "pieces", D1)
        await table_store.delete(BATCH_TABLE, batch.id)
        healed = await ledger.update_batch_quantity_by_composite_key(batch.composite_key, 7, "pieces")
        return batch, healed, await table_store.find(BATCH_TABLE, {"composite_key": batch.composite_key})

    original, healed, records = asyncio.run(run())

    assert healed.quantity == 7
    assert healed.id != original.id
    assert len(records) == 1
    assert metrics.snapshot().self_heals == 1


def test_self_heal_with_negative_delta_clamps(ledger):
    key = composite_key("shop-1", "Bread", D2)

    healed = asyncio.run(ledger.update_batch_quantity_by_composite_key(key, -4, "pieces"))

    assert healed.quantity == 0
    assert healed.purchase_date == D2


def test_existing_lot_is_updated_in_place(ledger):
    async def run():
        batch = await ledger.create_or_increment_batch("shop-1", "Rice", 10, "kg", D1)
        updated = await ledger.update_batch_quantity_by_composite_key(batch.composite_key, -3, "kg")
        return batch, updated

    batch, updated = asyncio.run(run())

    assert updated.id == batch.id
    assert updated.quantity == 7


def test_batches_listed_newest_first(ledger):
    async def run():
        for day in (D2, D1, D3):
            await ledger.create_or_increment_batch("shop-1", "Eggs", 6, "pieces", day)
        return await ledger.list_batches("shop-1", "Eggs")

    assert [batch.purchase_date for batch in asyncio.run(run())] == [D3, D2, D1]


def test_fifo_consumes_oldest_open_lots_first(ledger):
    async def run():
        expired = await ledger.create_or_increment_batch("shop-1", "Milk", 4, "l", date(2026, 2, 20))
        await ledger.update_batch_expiry(expired.id, date(2026, 3, 1))
        await ledger.create_or_increment_batch("shop-1", "Milk", 3, "l", D1)
        await ledger.create_or_increment_batch("shop-1", "Milk", 5, "l", D2)
        consumption = await ledger.consume_fifo("shop-1", "Milk", 6, "l")
        return consumption, await ledger.list_batches("shop-1", "Milk")

    consumption, lots = asyncio.run(run())

    assert [amount for _, amount in consumption.lots] == [3, 3]
    assert consumption.unattributed == 0
    assert {lot.purchase_date: lot.quantity for lot in lots} == {
        D2: 2,
        D1: 0,
        date(2026, 2, 20): 4,
    }


def test_fifo_reports_unattributed_remainder(ledger):
    async def run():
        await ledger.create_or_increment_batch("shop-1", "Salt", 2, "kg", D1)
        return await ledger.consume_fifo("shop-1", "Salt", 2500, "g")

    consumption = asyncio.run(run())

    assert [amount for _, amount in consumption.lots] == [2000]
    assert consumption.unattributed == 500


def test_expiring_batches_within_window(ledger):
    async def run():
        soon = await ledger.create_or_increment_batch("shop-1", "Bread", 5, "pieces", D1)
        later = await ledger.create_or_increment_batch("shop-1", "Milk", 5, "l", D1)
        await ledger.create_or_increment_batch("shop-1", "Sugar", 5, "kg", D1)
        await ledger.update_batch_expiry(soon.id, date(2026, 3, 12))
        await ledger.update_batch_expiry(later.id, date(2026, 4, 30))
        return await ledger.expiring_batches("shop-1", 7)

    assert [batch.product for batch in asyncio.run(run())] == ["Bread"]


def test_expiry_on_missing_lot_raises(ledger):
    with pytest.raises(LotNotFound):
        asyncio.run(ledger.update_batch_expiry("recmissing", D1))
