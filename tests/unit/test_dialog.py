from datetime import datetime, timedelta, timezone

import pytest

from stockbot.dialog.gate import ConfidenceGate, GateDecision, classify_reply
from stockbot.dialog.models import CorrectionState, CorrectionType, PendingConfirmation
from stockbot.dialog.store import confirmation_store, correction_store

T0 = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return FakeClock(T0)


@pytest.fixture()
def confirmations(tmp_path, clock):
    return confirmation_store(tmp_path / "dialog.db", 300, clock=clock)


def test_gate_routes_on_threshold():
    gate = ConfidenceGate(0.8)

    assert gate.decide(0.95) is GateDecision.PROCEED
    assert gate.decide(0.8) is GateDecision.PROCEED
    assert gate.decide(0.5) is GateDecision.CONFIRM
    assert gate.decide(None) is GateDecision.PROCEED


def test_gate_can_be_disabled():
    assert ConfidenceGate(0.8, confirmation_required=False).decide(0.1) is GateDecision.PROCEED


def test_only_exact_replies_are_classified():
    assert classify_reply("  YES ") == "yes"
    assert classify_reply("No") == "no"
    assert classify_reply("yes please") is None
    assert classify_reply("") is None


def test_newer_pending_entry_overwrites_older(confirmations, clock):
    confirmations.put(PendingConfirmation("actor-1", "5kg sugar purchased", "en", created_at=T0))
    clock.now = T0 + timedelta(seconds=10)
    confirmations.put(PendingConfirmation("actor-1", "2 milk bought", "en", created_at=clock.now))

    pending = confirmations.peek("actor-1")

    assert pending.transcript == "2 milk bought"
    assert pending.created_at == clock.now


def test_expired_entry_reads_as_absent(confirmations, clock):
    confirmations.put(PendingConfirmation("actor-1", "5kg sugar purchased", created_at=T0))

    clock.now = T0 + timedelta(seconds=299)
    assert confirmations.peek("actor-1") is not None

    clock.now = T0 + timedelta(seconds=301)
    assert confirmations.peek("actor-1") is None

    clock.now = T0
    assert confirmations.peek("actor-1") is None


def test_take_expired_returns_only_stale_entries(tmp_path, clock):
    corrections = correction_store(tmp_path / "dialog.db", 300, clock=clock)
    corrections.put(
        CorrectionState(
            "actor-1",
            CorrectionType.BATCH_SELECTION,
            '{"shop_id": "shop-1", "product": "Maggi", "quantity": 3, "unit": "pieces"}',
            created_at=T0,
        )
    )

    assert corrections.take_expired("actor-1") is None
    assert corrections.peek("actor-1") is not None

    clock.now = T0 + timedelta(seconds=301)
    stale = corrections.take_expired("actor-1")

    assert stale.data["product"] == "Maggi"
    assert corrections.take_expired("actor-1") is None


def test_take_is_compare_and_delete(confirmations):
    confirmations.put(PendingConfirmation("actor-1", "5kg sugar purchased", created_at=T0))

    assert confirmations.take("actor-1", T0 - timedelta(seconds=1)) is False
    assert confirmations.take("actor-1", T0) is True
    assert confirmations.take("actor-1", T0) is False
    assert confirmations.peek("actor-1") is None


def test_pop_consumes_entry(confirmations):
    confirmations.put(PendingConfirmation("actor-1", "5kg sugar purchased", created_at=T0))

    assert confirmations.pop("actor-1").transcript == "5kg sugar purchased"
    assert confirmations.pop("actor-1") is None


def test_correction_and_confirmation_share_a_database(tmp_path, clock, confirmations):
    corrections = correction_store(tmp_path / "dialog.db", 300, clock=clock)
    confirmations.put(PendingConfirmation("actor-1", "5kg sugar purchased", created_at=T0))
    corrections.put(
        CorrectionState(
            "actor-1",
            CorrectionType.BATCH_SELECTION,
            '{"product": "Milk", "quantity": 2}',
            created_at=T0,
        )
    )

    state = corrections.peek("actor-1")

    assert state.correction_type is CorrectionType.BATCH_SELECTION
    assert state.data == {"product": "Milk", "quantity": 2}
    assert confirmations.peek("actor-1").transcript == "5kg sugar purchased"
