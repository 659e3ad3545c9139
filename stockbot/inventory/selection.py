"""Resolve follow-up messages that pick a lot or set an expiry date."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date

from stockbot.inventory.ledger import BatchLedger
from stockbot.inventory.models import BatchRecord
from stockbot.parsing.catalog import LanguageCatalog, keyword_pattern

logger = logging.getLogger("stockbot.selection")

NUMERIC_DATE = re.compile(r"(?<!\d)(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4}|\d{2})(?!\d)")
ISO_DATE = re.compile(r"(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})(?!\d)")
WORDED_DATE = re.compile(r"(?<!\d)(\d{1,2})\s+([^\s\d,.]+)[,.]?\s+(\d{4})(?!\d)")
EXPIRY_MESSAGE = re.compile(r"^\s*(?P<product>[^:\d][^:]*?)\s*:\s*(?P<date>.+?)\s*$")


@dataclass(slots=True)
class ExpiryRequest:
    product: str | None
    expiry_date: date


class SelectionResolver:
    """Interpret lot-selection replies and expiry-date messages.

    Lot lists are expected newest first, as returned by
    :meth:`BatchLedger.list_batches`.
    """

    def __init__(self, catalog: LanguageCatalog, ledger: BatchLedger) -> None:
        self.catalog = catalog
        self.ledger = ledger
        self._oldest = keyword_pattern(catalog.lot_selectors.get("oldest", []))
        self._newest = keyword_pattern(catalog.lot_selectors.get("newest", []))

    def detect_product(self, text: str, fallback: str | None = None) -> str | None:
        return self.catalog.match_product(text) or fallback

    def has_selector(self, text: str) -> bool:
        return bool(self._oldest.search(text) or self._newest.search(text) or self.parse_date(text))

    def select_lot(self, text: str, lots: list[BatchRecord]) -> BatchRecord | None:
        if not lots:
            return None
        if self._oldest.search(text):
            return lots[-1]
        if self._newest.search(text):
            return lots[0]

        wanted = self.parse_date(text)
        if wanted is not None:
            for lot in lots:
                if lot.purchase_date == wanted:
                    return lot
            logger.info("No lot purchased on %s; using the oldest", wanted.isoformat())
        return lots[-1]

    def parse_date(self, text: str) -> date | None:
        """Read D/M/Y (also ``-`` or ``.``), ISO, or "D Month YYYY" dates."""

        match = ISO_DATE.search(text)
        if match:
            return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

        match = NUMERIC_DATE.search(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            if len(match.group(3)) == 2:
                year += 2000
            return _safe_date(year, month, day)

        match = WORDED_DATE.search(text)
        if match:
            month = self.catalog.months.get(match.group(2).lower())
            if month is not None:
                return _safe_date(int(match.group(3)), month, int(match.group(1)))
        return None

    def parse_expiry(self, text: str) -> ExpiryRequest | None:
        """Parse ``"Product: <date>"``; a message that is only a date yields no product.

        Anything besides the date after the colon ("Sugar: 5kg purchased on
        12/10/2026") is an ordinary update, not an expiry.
        """

        match = EXPIRY_MESSAGE.match(text)
        if match:
            expiry = self.parse_date(match.group("date"))
            product = self.catalog.match_product(match.group("product"))
            if expiry is not None and product is not None and _is_only_date(match.group("date")):
                return ExpiryRequest(product=product, expiry_date=expiry)

        expiry = self.parse_date(text)
        if expiry is not None and _is_only_date(text):
            return ExpiryRequest(product=None, expiry_date=expiry)
        return None

    async def apply_expiry(self, shop_id: str, product: str, expiry_date: date) -> BatchRecord | None:
        """Set the expiry of the most recent lot; ``None`` when the product has no lots."""

        lots = await self.ledger.list_batches(shop_id, product)
        if not lots:
            logger.info("No lots for %s/%s to set expiry on", shop_id, product)
            return None
        return await self.ledger.update_batch_expiry(lots[0].id, expiry_date)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _is_only_date(text: str) -> bool:
    stripped = NUMERIC_DATE.sub("", ISO_DATE.sub("", text))
    stripped = WORDED_DATE.sub("", stripped)
    return not stripped.strip(" ,.:-")
