"""Load opening stock levels into the configured store.

Expects a JSON array of ``{"shop_id", "product", "quantity", "unit"?}``
objects. Every entry is applied as a bulk adjustment, so running the script
twice doubles the stock.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from stockbot.core.config import get_settings  # noqa: E402
from stockbot.core.logging import configure_logging  # noqa: E402
from stockbot.inventory.ledger import BatchLedger  # noqa: E402
from stockbot.inventory.reconciler import BulkItem, InventoryReconciler  # noqa: E402
from stockbot.main import build_store  # noqa: E402

logger = logging.getLogger("stockbot.seed")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed opening stock levels")
    parser.add_argument(
        "--input-file",
        type=Path,
        required=True,
        help="Path to a JSON array of opening stock entries.",
    )
    parser.add_argument(
        "--shop-id",
        help="Shop id applied to entries that do not name one.",
    )
    return parser.parse_args()


def load_items(path: Path, default_shop: str | None) -> list[BulkItem]:
    if not path.exists():
        raise FileNotFoundError(f"{path} does not exist")

    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    if not isinstance(data, list):
        raise ValueError("Expected top-level JSON array of stock entries")

    items = []
    for entry in data:
        shop_id = entry.get("shop_id") or default_shop
        if not shop_id:
            raise ValueError(f"Entry for {entry.get('product')!r} has no shop_id; pass --shop-id")
        items.append(
            BulkItem(
                shop_id=shop_id,
                product=entry["product"],
                delta=entry["quantity"],
                unit=entry.get("unit"),
            )
        )
    return items


async def seed(items: list[BulkItem]) -> int:
    settings = get_settings()
    store = build_store(settings)
    reconciler = InventoryReconciler(store, BatchLedger(store), default_unit=settings.default_unit)
    result = await reconciler.bulk_update(items)
    for failure in result.failed:
        logger.error("Could not seed %s: %s", failure.product, failure.error)
    return len(result.succeeded)


def main() -> None:
    args = parse_args()
    configure_logging(get_settings().log_level)
    items = load_items(args.input_file, args.shop_id)
    seeded = asyncio.run(seed(items))
    print(f"Seeded {seeded} of {len(items)} stock entries")


if __name__ == "__main__":
    main()
