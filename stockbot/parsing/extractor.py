"""Turn one clause into a structured candidate update."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from stockbot.parsing.catalog import LanguageCatalog
from stockbot.parsing.types import UNKNOWN_PRODUCT, Action, ParsedUpdate
from stockbot.parsing.units import UNIT_ALIASES, normalize_unit, tidy

logger = logging.getLogger("stockbot.extractor")

NUMBER = re.compile(r"\d+(?:\.\d+)?")
NUMBER_WITH_UNIT = re.compile(r"(\d+(?:\.\d+)?)\s*([^\s\d.,!?।]+)")
TOKEN_STRIP = " ,.!?;:\"'()।"


@dataclass(slots=True)
class ExtractionResult:
    """Valid updates in clause order plus counts for observability."""

    updates: list[ParsedUpdate] = field(default_factory=list)
    total_clauses: int = 0
    rejected: list[ParsedUpdate] = field(default_factory=list)

    @property
    def valid_clauses(self) -> int:
        return len(self.updates)


class UpdateExtractor:
    """Resolve product, quantity, unit and action for each clause.

    When no action keyword matches, the clause is treated as a sale. That is
    the long-standing behaviour operators rely on ("10 Parle-G" means ten were
    sold) but it is ambiguous; ``require_action_keyword`` turns it off and
    such clauses are rejected instead.
    """

    def __init__(
        self,
        catalog: LanguageCatalog,
        *,
        default_unit: str = "pieces",
        require_action_keyword: bool = False,
    ) -> None:
        self.catalog = catalog
        self.default_unit = default_unit
        self.require_action_keyword = require_action_keyword

    def extract(self, clause: str) -> ParsedUpdate:
        product = self.catalog.match_product(clause) or UNKNOWN_PRODUCT
        magnitude, unit = self._quantity_and_unit(clause)
        action = self._action(clause)

        if action is None and not self.require_action_keyword:
            action = Action.SOLD

        quantity = -abs(magnitude) if action is Action.SOLD else abs(magnitude)
        return ParsedUpdate(product=product, quantity=quantity, unit=unit, action=action, clause=clause)

    def extract_all(self, clauses: Iterable[str]) -> ExtractionResult:
        result = ExtractionResult()
        for clause in clauses:
            result.total_clauses += 1
            update = self.extract(clause)
            if update.is_valid:
                result.updates.append(update)
            else:
                result.rejected.append(update)
        logger.info(
            "Extracted %d valid update(s) from %d clause(s)",
            result.valid_clauses,
            result.total_clauses,
        )
        return result

    def _quantity_and_unit(self, clause: str) -> tuple[float, str]:
        lowered = clause.lower()

        number = NUMBER.search(lowered)
        if number:
            quantity = tidy(float(number.group()))
            attached = NUMBER_WITH_UNIT.match(lowered, number.start())
            if attached and attached.group(2) in UNIT_ALIASES:
                return quantity, normalize_unit(attached.group(2))
            return quantity, self._scan_unit(lowered)

        tokens = [token.strip(TOKEN_STRIP) for token in lowered.split()]
        for index, token in enumerate(tokens):
            if token in self.catalog.numbers:
                quantity = self.catalog.numbers[token]
                following = tokens[index + 1] if index + 1 < len(tokens) else ""
                if following in UNIT_ALIASES:
                    return quantity, normalize_unit(following)
                return quantity, self._scan_unit(lowered)

        return 0, self._scan_unit(lowered)

    def _scan_unit(self, lowered: str) -> str:
        # Single-letter aliases are only trusted right after a number ("5 g"),
        # otherwise "Parle G" would read as grams.
        for token in lowered.split():
            token = token.strip(TOKEN_STRIP)
            if len(token) > 1 and token in UNIT_ALIASES:
                return normalize_unit(token)
        return self.default_unit

    def _action(self, clause: str) -> Action | None:
        for action, pattern in self.catalog.action_patterns:
            if pattern.search(clause):
                return action
        return None
