"""Quantity unit canonicalization and conversion."""

from __future__ import annotations

import logging

logger = logging.getLogger("stockbot.units")

UNIT_ALIASES = {
    "kg": "kg",
    "kgs": "kg",
    "kilo": "kg",
    "kilos": "kg",
    "kilogram": "kg",
    "kilograms": "kg",
    "किलो": "kg",
    "किलोग्राम": "kg",
    "g": "g",
    "gm": "g",
    "gms": "g",
    "gram": "g",
    "grams": "g",
    "ग्राम": "g",
    "l": "l",
    "ltr": "l",
    "litre": "l",
    "litres": "l",
    "liter": "l",
    "liters": "l",
    "लीटर": "l",
    "ml": "ml",
    "millilitre": "ml",
    "milliliter": "ml",
    "मिलीलीटर": "ml",
    "piece": "pieces",
    "pieces": "pieces",
    "pc": "pieces",
    "pcs": "pieces",
    "nos": "pieces",
    "पीस": "pieces",
    "packet": "packets",
    "packets": "packets",
    "pkt": "packets",
    "pkts": "packets",
    "पैकेट": "packets",
    "box": "boxes",
    "boxes": "boxes",
    "डिब्बा": "boxes",
    "डिब्बे": "boxes",
    "bottle": "bottles",
    "bottles": "bottles",
    "बोतल": "bottles",
}

# canonical unit -> (base unit, factor to base)
UNIT_CONVERSIONS = {
    "kg": ("kg", 1.0),
    "g": ("kg", 0.001),
    "l": ("l", 1.0),
    "ml": ("l", 0.001),
}


def normalize_unit(unit: str | None, default: str = "pieces") -> str:
    """Return the canonical spelling for ``unit``; unknown units pass through lower-cased."""

    cleaned = (unit or "").strip().lower().rstrip(".")
    if not cleaned:
        return default
    return UNIT_ALIASES.get(cleaned, cleaned)


def base_of(unit: str) -> tuple[str, float]:
    canonical = normalize_unit(unit)
    # Count-like and unknown units are their own base at factor 1.
    return UNIT_CONVERSIONS.get(canonical, (canonical, 1.0))


def to_base(quantity: float, unit: str) -> tuple[float, str]:
    base_unit, factor = base_of(unit)
    return quantity * factor, base_unit


def from_base(quantity: float, unit: str) -> float:
    _, factor = base_of(unit)
    return tidy(quantity / factor)


def convert(quantity: float, from_unit: str, to_unit: str) -> float:
    """Convert ``quantity`` between units sharing a base scale.

    Units on different scales (kilograms vs. pieces) cannot be converted; the
    value is passed through at factor 1, matching how stored rows have always
    been combined, and a warning is logged.
    """

    source_base, source_factor = base_of(from_unit)
    target_base, target_factor = base_of(to_unit)
    if source_base != target_base:
        logger.warning("Combining %s with %s without conversion", from_unit, to_unit)
        return tidy(quantity)
    return tidy(quantity * source_factor / target_factor)


def tidy(value: float) -> float:
    rounded = round(value, 4)
    if rounded == 0:
        return 0
    return int(rounded) if float(rounded).is_integer() else rounded
