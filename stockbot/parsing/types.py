"""Parsing-related enums and data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

UNKNOWN_PRODUCT = "Unknown"


class Action(str, Enum):
    """What a clause says happened to the stock."""

    PURCHASED = "purchased"
    SOLD = "sold"
    REMAINING = "remaining"


class Modality(str, Enum):
    VOICE = "voice"
    TEXT = "text"


@dataclass(slots=True)
class Utterance:
    """One inbound message after transport and speech-to-text."""

    actor_id: str
    text: str
    modality: Modality = Modality.TEXT
    language_hint: str | None = None
    confidence: float | None = None
    shop_id: str | None = None

    @property
    def shop(self) -> str:
        return self.shop_id or self.actor_id


@dataclass(slots=True)
class ParsedUpdate:
    """Structured candidate update extracted from one clause.

    ``quantity`` is signed: sales are negative, purchases and remaining
    counts positive. It is expressed in ``unit``; whole numbers are kept as
    ``int`` and spoken decimals ("2.5kg") as ``float``.
    """

    product: str
    quantity: float
    unit: str
    action: Action | None
    clause: str = ""

    @property
    def is_valid(self) -> bool:
        return self.product != UNKNOWN_PRODUCT and self.quantity != 0 and isinstance(self.action, Action)
