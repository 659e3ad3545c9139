import asyncio
import logging
from datetime import date

from stockbot.core.errors import StoreError
from stockbot.inventory.ledger import BatchLedger
from stockbot.inventory.reconciler import BulkItem, InventoryReconciler
from stockbot.parsing.types import Action, ParsedUpdate
from stockbot.storage.base import BATCH_TABLE, INVENTORY_TABLE
from stockbot.storage.sqlite import SQLiteTableStore

TODAY = date(2026, 3, 10)


class FailingCreateStore(SQLiteTableStore):
    """Refuses to create inventory rows for the products in ``broken``."""

    def __init__(self, db_path, broken):
        super().__init__(db_path)
        self.broken = set(broken)

    async def create(self, table, fields):
        if table == INVENTORY_TABLE and fields.get("product") in self.broken:
            raise StoreError("upstream unavailable")
        return await super().create(table, fields)


def bought(product, quantity, unit="pieces"):
    return ParsedUpdate(product, quantity, unit, Action.PURCHASED)


def sold(product, quantity, unit="pieces"):
    return ParsedUpdate(product, -quantity, unit, Action.SOLD)


def test_purchase_then_equal_sale_returns_to_zero(reconciler, ledger):
    async def run():
        await reconciler.apply("shop-1", bought("Parle-G", 10))
        applied = await reconciler.apply("shop-1", sold("Parle-G", 10))
        return applied, await ledger.list_batches("shop-1", "Parle-G")

    applied, lots = asyncio.run(run())

    assert applied.new_quantity == 0
    assert applied.lots == [{"batch_id": lots[0].id, "purchase_date": TODAY.isoformat(), "quantity": 10}]
    assert lots[0].quantity == 0


def test_purchase_in_kilograms_reports_batch_date(reconciler):
    applied = asyncio.run(reconciler.apply("shop-1", bought("Sugar", 5, "kg")))

    assert (applied.new_quantity, applied.unit) == (5, "kg")
    assert applied.batch_date == TODAY
    assert applied.to_dict()["batch_date"] == "2026-03-10"


def test_stored_unit_follows_latest_update(reconciler):
    async def run():
        await reconciler.apply("shop-1", bought("Sugar", 5, "kg"))
        return await reconciler.apply("shop-1", sold("Sugar", 500, "g"))

    applied = asyncio.run(run())

    assert (applied.new_quantity, applied.unit) == (4500, "g")


def test_row_is_recreated_with_batch_links(reconciler, ledger, table_store):
    async def run():
        await reconciler.apply("shop-1", bought("Milk", 4, "l"))
        first = await table_store.find(INVENTORY_TABLE, {"shop_id": "shop-1"})
        await reconciler.apply("shop-1", sold("Milk", 1, "l"))
        second = await table_store.find(INVENTORY_TABLE, {"shop_id": "shop-1"})
        return first, second, await ledger.list_batches("shop-1", "Milk")

    first, second, lots = asyncio.run(run())

    assert len(first) == len(second) == 1
    assert first[0].id != second[0].id
    assert second[0].fields["quantity"] == 3
    assert second[0].fields["batch_ids"] == first[0].fields["batch_ids"]
    assert [lot.linked_inventory_id for lot in lots] == [second[0].id]
    assert len(second[0].fields["batch_ids"]) == 1


def test_remaining_is_summed_unless_absolute(table_store, ledger):
    legacy = InventoryReconciler(table_store, ledger)
    absolute = InventoryReconciler(table_store, ledger, remaining_is_absolute=True)
    remaining = ParsedUpdate("Rice", 3, "kg", Action.REMAINING)

    async def run():
        await legacy.apply("shop-1", bought("Rice", 10, "kg"))
        summed = await legacy.apply("shop-1", remaining)
        level = await absolute.apply("shop-1", remaining)
        return summed, level

    summed, level = asyncio.run(run())

    assert summed.new_quantity == 13
    assert (level.new_quantity, level.delta) == (3, -10)


def test_ask_policy_offers_open_lots_without_touching_them(table_store, ledger):
    reconciler = InventoryReconciler(table_store, ledger, sale_lot_policy="ask")

    async def run():
        await ledger.create_or_increment_batch("shop-1", "Maggi", 5, "pieces", date(2026, 3, 1))
        await ledger.create_or_increment_batch("shop-1", "Maggi", 5, "pieces", date(2026, 3, 5))
        applied = await reconciler.apply("shop-1", sold("Maggi", 3))
        return applied, await ledger.list_batches("shop-1", "Maggi")

    applied, lots = asyncio.run(run())

    assert [lot.purchase_date for lot in applied.lot_choices] == [date(2026, 3, 5), date(2026, 3, 1)]
    assert [lot.quantity for lot in lots] == [5, 5]
    assert applied.new_quantity == -3


def test_none_policy_leaves_lots_alone(table_store, ledger):
    reconciler = InventoryReconciler(table_store, ledger, sale_lot_policy="none")

    async def run():
        await reconciler.apply("shop-1", bought("Soap", 4))
        applied = await reconciler.apply("shop-1", sold("Soap", 1))
        return applied, await ledger.list_batches("shop-1", "Soap")

    applied, lots = asyncio.run(run())

    assert applied.lots == []
    assert lots[0].quantity == 4


def test_bulk_update_settles_all_items(tmp_path):
    store = FailingCreateStore(tmp_path / "inventory.db", broken={"Broken"})
    reconciler = InventoryReconciler(store, BatchLedger(store, settle_seconds=0))
    items = [
        BulkItem("shop-1", "Tea", 5),
        BulkItem("shop-1", "Broken", 2),
        BulkItem("shop-2", "Tea", 1, "packets"),
    ]

    result = asyncio.run(reconciler.bulk_update(items))

    assert sorted((item.product, item.new_quantity) for item in result.succeeded) == [("Tea", 1), ("Tea", 5)]
    assert [(item.product, item.error) for item in result.failed] == [("Broken", "upstream unavailable")]


def test_bulk_item_without_unit_keeps_stored_unit(reconciler):
    async def run():
        await reconciler.apply("shop-1", bought("Atta", 10, "kg"))
        return await reconciler.bulk_update([BulkItem("shop-1", "Atta", -2)])

    result = asyncio.run(run())

    assert (result.succeeded[0].new_quantity, result.succeeded[0].unit) == (8, "kg")


def test_concurrent_updates_to_one_product_are_not_lost(reconciler):
    items = [BulkItem("shop-1", "Eggs", 1) for _ in range(20)]

    async def run():
        await reconciler.bulk_update(items)
        return await reconciler.current_inventory("shop-1")

    rows = asyncio.run(run())

    assert len(rows) == 1
    assert rows[0].quantity == 20


def test_failed_insert_after_delete_logs_lost_values(tmp_path, caplog):
    store = FailingCreateStore(tmp_path / "inventory.db", broken=set())
    reconciler = InventoryReconciler(store, BatchLedger(store, settle_seconds=0), sale_lot_policy="none")

    async def run():
        await reconciler.apply("shop-1", bought("Dal", 4, "kg"))
        store.broken.add("Dal")
        try:
            await reconciler.apply("shop-1", sold("Dal", 1, "kg"))
        except StoreError:
            pass
        return await reconciler.current_inventory("shop-1")

    with caplog.at_level(logging.ERROR, logger="stockbot.reconciler"):
        rows = asyncio.run(run())

    assert rows == []
    assert "Inventory row lost for shop-1/Dal: quantity=3 unit=kg" in caplog.text


def test_low_stock_uses_threshold(reconciler):
    async def run():
        await reconciler.bulk_update(
            [BulkItem("shop-1", "Salt", 2), BulkItem("shop-1", "Tea", 5), BulkItem("shop-1", "Rice", 9)]
        )
        return await reconciler.low_stock("shop-1", 5)

    assert [row.product for row in asyncio.run(run())] == ["Salt", "Tea"]


def test_bulk_does_not_create_lots(reconciler, table_store):
    async def run():
        await reconciler.bulk_update([BulkItem("shop-1", "Bread", 6)])
        return await table_store.find(BATCH_TABLE)

    assert asyncio.run(run()) == []
