"""Typed views over inventory and batch rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from stockbot.storage.base import Record


def composite_key(shop_id: str, product: str, purchase_date: date) -> str:
    return f"{shop_id}|{product}|{purchase_date.isoformat()}"


def split_composite_key(key: str) -> tuple[str, str, date]:
    """Inverse of :func:`composite_key`; product names may themselves contain ``|``."""

    shop_id, _, rest = key.partition("|")
    product, _, raw_date = rest.rpartition("|")
    if not shop_id or not product or not raw_date:
        raise ValueError(f"malformed composite key: {key!r}")
    return shop_id, product, date.fromisoformat(raw_date)


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(slots=True)
class InventoryRecord:
    """Aggregate stock for one (shop, product); quantity is in ``unit``."""

    shop_id: str
    product: str
    quantity: float
    unit: str
    batch_ids: list[str] = field(default_factory=list)
    updated_at: str | None = None
    id: str | None = None

    @classmethod
    def from_record(cls, record: Record) -> "InventoryRecord":
        fields = record.fields
        return cls(
            id=record.id,
            shop_id=str(fields.get("shop_id", "")),
            product=str(fields.get("product", "")),
            quantity=fields.get("quantity") or 0,
            unit=fields.get("unit") or "pieces",
            batch_ids=list(fields.get("batch_ids") or []),
            updated_at=fields.get("updated_at"),
        )

    def to_fields(self) -> dict[str, Any]:
        return {
            "shop_id": self.shop_id,
            "product": self.product,
            "quantity": self.quantity,
            "unit": self.unit,
            "batch_ids": list(self.batch_ids),
            "updated_at": self.updated_at or datetime.now().isoformat(timespec="seconds"),
        }

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.to_fields()}


@dataclass(slots=True)
class BatchRecord:
    """One dated purchase lot."""

    shop_id: str
    product: str
    quantity: float
    unit: str
    purchase_date: date
    expiry_date: date | None = None
    purchase_price: float | None = None
    purchase_value: float | None = None
    linked_inventory_id: str | None = None
    id: str | None = None

    @property
    def composite_key(self) -> str:
        return composite_key(self.shop_id, self.product, self.purchase_date)

    def is_expired(self, today: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < today

    @classmethod
    def from_record(cls, record: Record) -> "BatchRecord":
        fields = record.fields
        purchase_date = _parse_date(fields.get("purchase_date"))
        if purchase_date is None:
            # Rows written before dates were required fall back to their key.
            _, _, purchase_date = split_composite_key(str(fields["composite_key"]))
        return cls(
            id=record.id,
            shop_id=str(fields.get("shop_id", "")),
            product=str(fields.get("product", "")),
            quantity=fields.get("quantity") or 0,
            unit=fields.get("unit") or "pieces",
            purchase_date=purchase_date,
            expiry_date=_parse_date(fields.get("expiry_date")),
            purchase_price=fields.get("purchase_price"),
            purchase_value=fields.get("purchase_value"),
            linked_inventory_id=fields.get("linked_inventory_id"),
        )

    def to_fields(self) -> dict[str, Any]:
        return {
            "shop_id": self.shop_id,
            "product": self.product,
            "quantity": self.quantity,
            "unit": self.unit,
            "purchase_date": self.purchase_date.isoformat(),
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "purchase_price": self.purchase_price,
            "purchase_value": self.purchase_value,
            "composite_key": self.composite_key,
            "linked_inventory_id": self.linked_inventory_id,
        }

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.to_fields()}
