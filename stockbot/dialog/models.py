"""Dataclasses representing per-actor dialog state."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CorrectionType(str, Enum):
    """Slow follow-up dialogs that wait for another operator message."""

    BATCH_SELECTION = "batch_selection"
    EXPIRY_ENTRY = "expiry_entry"


@dataclass(slots=True)
class PendingConfirmation:
    """A low-confidence transcript waiting for "yes" or "no"."""

    actor_id: str
    transcript: str
    detected_language: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_body(self) -> dict[str, Any]:
        return {"transcript": self.transcript, "detected_language": self.detected_language}

    @classmethod
    def from_body(cls, actor_id: str, body: dict[str, Any], created_at: datetime) -> "PendingConfirmation":
        return cls(
            actor_id=actor_id,
            transcript=body["transcript"],
            detected_language=body.get("detected_language"),
            created_at=created_at,
        )


@dataclass(slots=True)
class CorrectionState:
    """An open correction dialog; ``payload`` is serialized JSON owned by the dialog type."""

    actor_id: str
    correction_type: CorrectionType
    payload: str
    detected_language: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def data(self) -> dict[str, Any]:
        return json.loads(self.payload or "{}")

    def to_body(self) -> dict[str, Any]:
        return {
            "correction_type": self.correction_type.value,
            "payload": self.payload,
            "detected_language": self.detected_language,
        }

    @classmethod
    def from_body(cls, actor_id: str, body: dict[str, Any], created_at: datetime) -> "CorrectionState":
        return cls(
            actor_id=actor_id,
            correction_type=CorrectionType(body["correction_type"]),
            payload=body.get("payload") or "{}",
            detected_language=body.get("detected_language"),
            created_at=created_at,
        )
