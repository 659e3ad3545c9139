"""Route transcripts to immediate processing or operator confirmation."""

from __future__ import annotations

from enum import Enum


class GateDecision(str, Enum):
    PROCEED = "proceed"
    CONFIRM = "confirm"


CONFIRM_REPLY = "yes"
REJECT_REPLY = "no"


class ConfidenceGate:
    """Compare a speech-to-text confidence score against a threshold.

    Typed text carries no score and always proceeds. Low confidence is a
    routing decision, not an error.
    """

    def __init__(self, threshold: float = 0.8, *, confirmation_required: bool = True) -> None:
        self.threshold = threshold
        self.confirmation_required = confirmation_required

    def decide(self, confidence: float | None) -> GateDecision:
        if not self.confirmation_required or confidence is None:
            return GateDecision.PROCEED
        if confidence < self.threshold:
            return GateDecision.CONFIRM
        return GateDecision.PROCEED


def classify_reply(text: str) -> str | None:
    """Return ``"yes"``/``"no"`` when ``text`` is exactly a confirmation reply."""

    reply = (text or "").strip().lower()
    if reply in (CONFIRM_REPLY, REJECT_REPLY):
        return reply
    return None
