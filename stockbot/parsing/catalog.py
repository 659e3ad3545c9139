"""Language catalog: product aliases, keywords and number words loaded from JSON.

Every table is keyed by language in ``stockbot/data/catalog.json``; adding a
language means adding a block to that file. Languages are merged in file
order, which also fixes the order in which product aliases are scanned.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Mapping

from stockbot.parsing.types import Action

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "catalog.json"

ACTION_PRIORITY = (Action.PURCHASED, Action.SOLD, Action.REMAINING)


@dataclass(slots=True)
class CorrectionRule:
    """One ordered rewrite applied to raw transcripts."""

    name: str
    language: str
    pattern: re.Pattern[str]
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(self.replacement, text)


@dataclass(slots=True)
class LanguageCatalog:
    """Merged lookup tables for every configured language."""

    languages: list[str]
    product_aliases: list[tuple[str, str]]
    numbers: dict[str, int]
    action_patterns: list[tuple[Action, re.Pattern[str]]]
    delimiters: list[str]
    lot_selectors: dict[str, list[str]]
    months: dict[str, int]
    corrections: list[CorrectionRule] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)

    @classmethod
    def load(cls, path: Path | None = None) -> "LanguageCatalog":
        source = Path(path) if path else DEFAULT_CATALOG_PATH
        with source.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LanguageCatalog":
        languages = data.get("languages")
        if not isinstance(languages, Mapping) or not languages:
            raise ValueError("catalog must define at least one language")

        product_aliases: list[tuple[str, str]] = []
        numbers: dict[str, int] = {}
        action_words: dict[Action, list[str]] = {action: [] for action in ACTION_PRIORITY}
        delimiters: list[str] = []
        lot_selectors: dict[str, list[str]] = {"oldest": [], "newest": []}
        months: dict[str, int] = {}

        for block in languages.values():
            for canonical, aliases in block.get("products", {}).items():
                for alias in [canonical, *aliases]:
                    entry = (alias.lower(), canonical)
                    if entry not in product_aliases:
                        product_aliases.append(entry)

            language_numbers = {word.lower(): int(value) for word, value in block.get("numbers", {}).items()}
            numbers.update(language_numbers)
            numbers.update(_compound_numbers(language_numbers, block.get("compound_number_separators", [])))

            for action in ACTION_PRIORITY:
                action_words[action].extend(block.get("actions", {}).get(action.value, []))
            delimiters.extend(block.get("delimiters", []))
            for selector, words in block.get("lot_selectors", {}).items():
                lot_selectors.setdefault(selector, []).extend(words)
            months.update({name.lower(): int(value) for name, value in block.get("months", {}).items()})

        corrections = [
            CorrectionRule(
                name=rule["name"],
                language=rule.get("language", ""),
                pattern=re.compile(rule["pattern"], re.IGNORECASE),
                replacement=rule["replacement"],
            )
            for rule in data.get("corrections", [])
        ]

        return cls(
            languages=list(languages.keys()),
            product_aliases=product_aliases,
            numbers=numbers,
            action_patterns=[(action, keyword_pattern(action_words[action])) for action in ACTION_PRIORITY],
            delimiters=delimiters,
            lot_selectors=lot_selectors,
            months=months,
            corrections=corrections,
            examples=list(data.get("examples", [])),
        )

    def match_product(self, text: str) -> str | None:
        lowered = text.lower()
        for alias, canonical in self.product_aliases:
            if alias in lowered:
                return canonical
        return None


def keyword_pattern(words: Iterable[str]) -> re.Pattern[str]:
    """Compile an alternation; Latin words need word boundaries, other scripts match as substrings."""

    parts = []
    for word in sorted(set(words), key=len, reverse=True):
        escaped = re.escape(word.lower())
        if word.isascii():
            parts.append(rf"(?<![\w-]){escaped}(?![\w-])")
        else:
            parts.append(escaped)
    if not parts:
        return re.compile(r"(?!x)x")
    return re.compile("|".join(parts), re.IGNORECASE)


def _compound_numbers(numbers: Mapping[str, int], separators: Iterable[str]) -> dict[str, int]:
    separators = list(separators)
    if not separators:
        return {}
    tens = {word: value for word, value in numbers.items() if value in range(20, 100, 10)}
    units = {word: value for word, value in numbers.items() if 1 <= value <= 9}
    compounds: dict[str, int] = {}
    for ten_word, ten_value in tens.items():
        for unit_word, unit_value in units.items():
            for separator in separators:
                compounds[f"{ten_word}{separator}{unit_word}"] = ten_value + unit_value
    return compounds


@lru_cache(maxsize=4)
def get_catalog(path: Path | None = None) -> LanguageCatalog:
    """Return a cached catalog instance for ``path`` (bundled catalog by default)."""

    return LanguageCatalog.load(path)
