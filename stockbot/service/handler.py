"""Message pipeline: confirmation dialog, correction dialogs, extraction and reconciliation."""

from __future__ import annotations

import json
import logging
from datetime import date

from stockbot.core.errors import ExtractionError, StockbotError, StoreError
from stockbot.core.locks import KeyedLock
from stockbot.core.logging import correlation_id, new_correlation_id
from stockbot.core.metrics import MetricsCollector
from stockbot.dialog.gate import CONFIRM_REPLY, ConfidenceGate, GateDecision, classify_reply
from stockbot.dialog.models import CorrectionState, CorrectionType, PendingConfirmation
from stockbot.dialog.store import ActorStateStore
from stockbot.inventory.ledger import BatchLedger
from stockbot.inventory.reconciler import AppliedUpdate, FailedUpdate, InventoryReconciler
from stockbot.inventory.selection import SelectionResolver
from stockbot.parsing.corrector import TranscriptCorrector
from stockbot.parsing.extractor import ExtractionResult, UpdateExtractor
from stockbot.parsing.segmenter import UtteranceSegmenter
from stockbot.parsing.types import Action, Utterance
from stockbot.service.events import (
    BatchSelected,
    BatchSelectionRequested,
    ConfirmationRejected,
    ConfirmationRequested,
    Event,
    ExpiryUpdated,
    NoRecentPurchase,
    NoValidUpdates,
    SystemErrorEvent,
    UpdatesApplied,
    UpdatesPartial,
)
from stockbot.service.preferences import PreferenceStore

logger = logging.getLogger("stockbot.handler")


class MessageHandler:
    """Turn one inbound message into result events.

    Messages from the same actor are handled one at a time. Any unexpected
    failure is logged and reported as a ``system_error`` event instead of
    propagating to the transport.
    """

    def __init__(
        self,
        *,
        corrector: TranscriptCorrector,
        gate: ConfidenceGate,
        segmenter: UtteranceSegmenter,
        extractor: UpdateExtractor,
        reconciler: InventoryReconciler,
        resolver: SelectionResolver,
        confirmations: ActorStateStore[PendingConfirmation],
        corrections: ActorStateStore[CorrectionState],
        preferences: PreferenceStore | None = None,
        metrics: MetricsCollector | None = None,
        examples: list[str] | None = None,
    ) -> None:
        self.corrector = corrector
        self.gate = gate
        self.segmenter = segmenter
        self.extractor = extractor
        self.reconciler = reconciler
        self.resolver = resolver
        self.confirmations = confirmations
        self.corrections = corrections
        self.preferences = preferences
        self.metrics = metrics or MetricsCollector()
        self.examples = examples or []
        self._actor_locks = KeyedLock()

    @property
    def ledger(self) -> BatchLedger:
        return self.reconciler.ledger

    async def handle(self, utterance: Utterance) -> list[Event]:
        token = None
        if correlation_id.get() == "-":
            token = correlation_id.set(new_correlation_id())
        try:
            async with self._actor_locks.hold(utterance.actor_id):
                try:
                    events = await self._handle(utterance)
                except Exception:  # noqa: BLE001
                    logger.exception("Message from %s failed", utterance.actor_id)
                    events = [SystemErrorEvent()]
            self.metrics.record_message(events[0].kind)
            return events
        finally:
            if token is not None:
                correlation_id.reset(token)

    async def _handle(self, utterance: Utterance) -> list[Event]:
        actor_id = utterance.actor_id
        text = (utterance.text or "").strip()

        abandoned = self.corrections.take_expired(actor_id)
        if abandoned is not None:
            await self._settle_abandoned_selection(abandoned)

        reply = classify_reply(text)
        if reply is not None:
            pending = self.confirmations.peek(actor_id)
            if pending is not None and self.confirmations.take(actor_id, pending.created_at):
                if reply == CONFIRM_REPLY:
                    logger.info("Confirmation accepted by %s", actor_id)
                    corrected = await self.corrector.correct(pending.transcript, pending.detected_language)
                    return await self._process(utterance.shop, actor_id, corrected, pending.detected_language)
                logger.info("Confirmation rejected by %s", actor_id)
                return [ConfirmationRejected()]

        correction = self.corrections.peek(actor_id)
        if correction is not None:
            events = await self._continue_correction(utterance, correction, text)
            if events is not None:
                return events

        expiry = self.resolver.parse_expiry(text)
        if expiry is not None and expiry.product is not None:
            return [await self._set_expiry(utterance.shop, expiry.product, expiry.expiry_date)]

        language = await self._language(utterance)
        corrected = await self.corrector.correct(text, language)

        if self.gate.decide(utterance.confidence) is GateDecision.CONFIRM:
            self.confirmations.put(
                PendingConfirmation(actor_id=actor_id, transcript=text, detected_language=language)
            )
            logger.info("Confidence %.2f below threshold; asking %s to confirm", utterance.confidence, actor_id)
            return [ConfirmationRequested(transcript=corrected, language=language)]

        return await self._process(utterance.shop, actor_id, corrected, language)

    async def _language(self, utterance: Utterance) -> str | None:
        if self.preferences is None:
            return utterance.language_hint
        try:
            if utterance.language_hint:
                await self.preferences.save_language(utterance.shop, utterance.language_hint)
                return utterance.language_hint
            return await self.preferences.get_language(utterance.shop)
        except StoreError as exc:
            logger.warning("Language preference unavailable for %s: %s", utterance.shop, exc)
            return utterance.language_hint

    def _extract(self, text: str) -> ExtractionResult:
        result = self.extractor.extract_all(self.segmenter.split(text))
        self.metrics.record_clauses(result.total_clauses, result.valid_clauses)
        if not result.updates:
            raise ExtractionError(result.total_clauses)
        return result

    async def _process(self, shop_id: str, actor_id: str, text: str, language: str | None) -> list[Event]:
        try:
            result = self._extract(text)
        except ExtractionError as exc:
            logger.info("No valid updates: %s", exc)
            return [NoValidUpdates(examples=list(self.examples), total_clauses=exc.total_clauses)]

        applied: list[AppliedUpdate] = []
        failed: list[FailedUpdate] = []
        for update in result.updates:
            try:
                applied.append(await self.reconciler.apply(shop_id, update))
            except StockbotError as exc:
                logger.error("Update %s %s %s failed: %s", update.action, update.quantity, update.product, exc)
                failed.append(FailedUpdate(update.product, update.quantity, update.unit, str(exc)))
            except Exception as exc:  # noqa: BLE001 - earlier clauses are already committed
                logger.exception("Update %s %s %s failed unexpectedly", update.action, update.quantity, update.product)
                failed.append(FailedUpdate(update.product, update.quantity, update.unit, str(exc) or type(exc).__name__))
        self.metrics.record_updates(len(applied), len(failed))

        purchased = [item.product for item in applied if item.action is Action.PURCHASED and item.batch_date]
        events: list[Event]
        if failed:
            events = [
                UpdatesPartial(
                    succeeded=[item.to_dict() for item in applied],
                    failed=[item.to_dict() for item in failed],
                )
            ]
        else:
            events = [UpdatesApplied(items=[item.to_dict() for item in applied], awaiting_expiry=purchased)]

        selection = await self._request_lot_selection(shop_id, actor_id, applied, language)
        if selection is not None:
            events.append(selection)
        elif purchased:
            await self._open_correction(
                CorrectionState(
                    actor_id=actor_id,
                    correction_type=CorrectionType.EXPIRY_ENTRY,
                    payload=json.dumps({"shop_id": shop_id, "products": purchased}, ensure_ascii=False),
                    detected_language=language,
                )
            )
        return events

    async def _request_lot_selection(
        self,
        shop_id: str,
        actor_id: str,
        applied: list[AppliedUpdate],
        language: str | None,
    ) -> BatchSelectionRequested | None:
        """Ask about the first sale with several open lots; later ones are drawn FIFO."""

        request: BatchSelectionRequested | None = None
        for item in applied:
            if not item.lot_choices:
                continue
            sold = -item.delta
            if request is not None:
                consumption = await self.ledger.consume_fifo(shop_id, item.product, sold, item.unit)
                item.lots = consumption.to_dict()
                continue
            request = BatchSelectionRequested(
                product=item.product,
                quantity=sold,
                unit=item.unit,
                lots=[lot.to_dict() for lot in item.lot_choices],
            )
            await self._open_correction(
                CorrectionState(
                    actor_id=actor_id,
                    correction_type=CorrectionType.BATCH_SELECTION,
                    payload=json.dumps(
                        {"shop_id": shop_id, "product": item.product, "quantity": sold, "unit": item.unit},
                        ensure_ascii=False,
                    ),
                    detected_language=language,
                )
            )
        return request

    async def _open_correction(self, state: CorrectionState) -> None:
        previous = self.corrections.peek(state.actor_id)
        if previous is not None and self.corrections.take(previous.actor_id, previous.created_at):
            await self._settle_abandoned_selection(previous)
        self.corrections.put(state)

    async def _settle_abandoned_selection(self, state: CorrectionState) -> None:
        """Draw a sale whose lot was never picked from the oldest lots instead."""

        if state.correction_type is not CorrectionType.BATCH_SELECTION:
            return
        data = state.data
        logger.info("Lot choice for %s was never made; consuming FIFO", data.get("product"))
        await self.ledger.consume_fifo(data["shop_id"], data["product"], data["quantity"], data["unit"])

    async def _continue_correction(
        self, utterance: Utterance, state: CorrectionState, text: str
    ) -> list[Event] | None:
        data = state.data
        shop_id = data.get("shop_id") or utterance.shop

        if state.correction_type is CorrectionType.BATCH_SELECTION:
            if not self.resolver.has_selector(text):
                return None
            if not self.corrections.take(state.actor_id, state.created_at):
                return None
            product = self.resolver.detect_product(text, fallback=data.get("product"))
            lots = await self.ledger.open_batches(shop_id, product)
            lot = self.resolver.select_lot(text, lots)
            if lot is None:
                return [NoRecentPurchase(product=product)]
            quantity = data.get("quantity", 0)
            updated = await self.ledger.update_batch_quantity_by_composite_key(
                lot.composite_key, -quantity, data.get("unit") or lot.unit
            )
            return [BatchSelected(product=product, quantity=quantity, batch=updated.to_dict())]

        expiry = self.resolver.parse_expiry(text)
        if expiry is None:
            return None
        if not self.corrections.take(state.actor_id, state.created_at):
            return None
        products = [expiry.product] if expiry.product else list(data.get("products") or [])
        if not products:
            return None
        return [await self._set_expiry(shop_id, product, expiry.expiry_date) for product in products]

    async def _set_expiry(self, shop_id: str, product: str, expiry_date: date) -> Event:
        lot = await self.resolver.apply_expiry(shop_id, product, expiry_date)
        if lot is None:
            return NoRecentPurchase(product=product)
        return ExpiryUpdated(product=product, batch_id=lot.id, expiry_date=expiry_date.isoformat())
