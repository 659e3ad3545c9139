"""Result events returned to the presentation layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar


@dataclass(slots=True)
class Event:
    kind: ClassVar[str] = "event"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, **asdict(self)}


@dataclass(slots=True)
class ConfirmationRequested(Event):
    kind: ClassVar[str] = "confirmation_requested"

    transcript: str
    language: str | None = None


@dataclass(slots=True)
class ConfirmationRejected(Event):
    kind: ClassVar[str] = "confirmation_rejected"

    message: str = "Okay, discarded. Please send the update again."


@dataclass(slots=True)
class UpdatesApplied(Event):
    kind: ClassVar[str] = "updates_applied"

    items: list[dict[str, Any]] = field(default_factory=list)
    awaiting_expiry: list[str] = field(default_factory=list)


@dataclass(slots=True)
class UpdatesPartial(Event):
    kind: ClassVar[str] = "updates_partial"

    succeeded: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class NoValidUpdates(Event):
    kind: ClassVar[str] = "no_valid_updates"

    examples: list[str] = field(default_factory=list)
    total_clauses: int = 0


@dataclass(slots=True)
class BatchSelectionRequested(Event):
    kind: ClassVar[str] = "batch_selection_requested"

    product: str
    quantity: float
    unit: str
    lots: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class BatchSelected(Event):
    kind: ClassVar[str] = "batch_selected"

    product: str
    quantity: float
    batch: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ExpiryUpdated(Event):
    kind: ClassVar[str] = "expiry_updated"

    product: str
    batch_id: str
    expiry_date: str


@dataclass(slots=True)
class NoRecentPurchase(Event):
    kind: ClassVar[str] = "no_recent_purchase"

    product: str


@dataclass(slots=True)
class SystemErrorEvent(Event):
    kind: ClassVar[str] = "system_error"

    message: str = "Something went wrong on our side. Please try again."
