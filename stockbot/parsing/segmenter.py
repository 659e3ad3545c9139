"""Split one message into ordered clauses."""

from __future__ import annotations

import re
from typing import Iterable

# A period only ends a clause when followed by whitespace or the end, so "2.5kg" survives.
TERMINATORS = r"[!?।|\n;]+|,(?!\d)|\.+(?=\s|$)"


class UtteranceSegmenter:
    """Split on sentence punctuation and conjunction-like delimiters."""

    def __init__(self, delimiters: Iterable[str] = ()) -> None:
        words = sorted({word.strip() for word in delimiters if word.strip()}, key=len, reverse=True)
        parts = [TERMINATORS]
        if words:
            alternation = "|".join(re.escape(word) for word in words)
            parts.append(rf"(?:^|\s)(?:{alternation})(?=\s|$)")
        self._pattern = re.compile("|".join(parts), re.IGNORECASE)

    def split(self, text: str) -> list[str]:
        clauses = []
        for segment in self._pattern.split(text or ""):
            cleaned = " ".join(segment.split())
            if cleaned:
                clauses.append(cleaned)
        return clauses
