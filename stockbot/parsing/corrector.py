"""Rule-based transcript fixups followed by the text-cleanup collaborator."""

from __future__ import annotations

import logging

from stockbot.parsing.catalog import CorrectionRule
from stockbot.service.cleanup import PassthroughCleaner, TextCleaner

logger = logging.getLogger("stockbot.corrector")


class TranscriptCorrector:
    """Repair known speech-to-text confusions, then hand off for cleanup.

    Rules run in catalog order. Quantity/unit/product patterns come before the
    bare trailing-marker rule, and every rule rewrites into a form no earlier
    or later rule matches, so running the corrector twice changes nothing.
    """

    def __init__(
        self,
        rules: list[CorrectionRule],
        cleaner: TextCleaner | None = None,
        *,
        max_chars: int = 500,
    ) -> None:
        self.rules = rules
        self.cleaner = cleaner or PassthroughCleaner()
        self.max_chars = max_chars

    def apply_rules(self, text: str, language: str | None = None) -> str:
        corrected = " ".join(text.split())
        for rule in self.rules:
            if language and rule.language and not _same_language(language, rule.language):
                continue
            rewritten = rule.apply(corrected)
            if rewritten != corrected:
                logger.debug("Correction %s applied", rule.name)
                corrected = rewritten
        return corrected

    async def correct(self, text: str, language: str | None = None) -> str:
        corrected = self.apply_rules(text, language)
        if not corrected:
            return corrected

        head, tail = self._split_for_cleanup(corrected)
        try:
            cleaned = await self.cleaner.clean(head, language)
        except Exception as exc:  # noqa: BLE001 - cleanup is optional
            logger.warning("Text cleanup failed, keeping rule-corrected text: %s", exc)
            return corrected

        cleaned = (cleaned or "").strip()
        if not cleaned:
            logger.info("Text cleanup returned nothing, keeping rule-corrected text")
            return corrected
        return f"{cleaned} {tail}" if tail else cleaned

    def _split_for_cleanup(self, text: str) -> tuple[str, str]:
        """Bound the part sent for cleanup at a word boundary; the rest is kept as is."""

        if len(text) <= self.max_chars:
            return text, ""
        cut = text.rfind(" ", 0, self.max_chars + 1)
        if cut <= 0:
            cut = self.max_chars
        logger.info("Sending the first %d of %d characters for cleanup", cut, len(text))
        return text[:cut].rstrip(), text[cut:].strip()


def _same_language(hint: str, rule_language: str) -> bool:
    # Hints arrive as "hi", "hi-IN" or "hi-latn"; rules are keyed by base code.
    return hint.lower().split("-")[0] == rule_language.lower()
