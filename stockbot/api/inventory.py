"""API routes for stock levels and purchase lots."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from stockbot.inventory.ledger import BatchLedger
from stockbot.inventory.reconciler import BulkItem, InventoryReconciler


def create_inventory_router(
    reconciler: InventoryReconciler,
    ledger: BatchLedger,
    *,
    low_stock_threshold: float = 5,
) -> APIRouter:
    router = APIRouter(tags=["inventory"])

    @router.post("/inventory/bulk")
    async def bulk_update(payload: dict) -> dict:
        raw_items = payload.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise HTTPException(status_code=400, detail="items must be a non-empty list")

        items = [_bulk_item(raw, index) for index, raw in enumerate(raw_items)]
        result = await reconciler.bulk_update(items)
        return {
            "succeeded": [item.to_dict() for item in result.succeeded],
            "failed": [item.to_dict() for item in result.failed],
        }

    @router.get("/inventory/{shop_id}")
    async def current_inventory(shop_id: str) -> dict:
        rows = await reconciler.current_inventory(shop_id)
        return {"shop_id": shop_id, "items": [row.to_dict() for row in rows]}

    @router.get("/inventory/{shop_id}/low-stock")
    async def low_stock(shop_id: str, threshold: float | None = None) -> dict:
        limit = low_stock_threshold if threshold is None else threshold
        rows = await reconciler.low_stock(shop_id, limit)
        return {"shop_id": shop_id, "threshold": limit, "items": [row.to_dict() for row in rows]}

    @router.get("/batches/{shop_id}")
    async def list_batches(shop_id: str, product: str | None = None) -> dict:
        batches = await ledger.list_batches(shop_id, product)
        return {"shop_id": shop_id, "batches": [batch.to_dict() for batch in batches]}

    @router.get("/batches/{shop_id}/expiring")
    async def expiring_batches(shop_id: str, days: int = 7) -> dict:
        if days < 0:
            raise HTTPException(status_code=400, detail="days must not be negative")
        batches = await ledger.expiring_batches(shop_id, days)
        return {"shop_id": shop_id, "days": days, "batches": [batch.to_dict() for batch in batches]}

    return router


def _bulk_item(raw: object, index: int) -> BulkItem:
    if not isinstance(raw, dict):
        raise HTTPException(status_code=400, detail=f"items[{index}] must be an object")

    shop_id = raw.get("shop_id")
    product = raw.get("product")
    delta = raw.get("delta")
    if not shop_id or not product:
        raise HTTPException(status_code=400, detail=f"items[{index}] needs shop_id and product")
    if isinstance(delta, bool) or not isinstance(delta, (int, float)):
        raise HTTPException(status_code=400, detail=f"items[{index}].delta must be a number")
    return BulkItem(shop_id=str(shop_id), product=str(product), delta=delta, unit=raw.get("unit"))
