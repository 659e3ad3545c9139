"""API route accepting normalized operator messages."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from stockbot.parsing.types import Modality, Utterance
from stockbot.service.handler import MessageHandler


def create_messages_router(handler: MessageHandler) -> APIRouter:
    router = APIRouter(tags=["messages"])

    @router.post("/messages")
    async def receive_message(message: dict) -> dict:
        actor_id = message.get("actor_id")
        text = message.get("text")
        if not actor_id or not isinstance(text, str) or not text.strip():
            raise HTTPException(status_code=400, detail="actor_id and text are required")

        try:
            modality = Modality(message.get("modality", Modality.TEXT.value))
        except ValueError:
            raise HTTPException(status_code=400, detail="modality must be 'voice' or 'text'") from None

        confidence = message.get("confidence")
        if confidence is not None:
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not 0 <= confidence <= 1:
                raise HTTPException(status_code=400, detail="confidence must be between 0 and 1")
            confidence = float(confidence)

        utterance = Utterance(
            actor_id=str(actor_id),
            text=text,
            modality=modality,
            language_hint=message.get("language_hint"),
            confidence=confidence,
            shop_id=message.get("shop_id"),
        )
        events = await handler.handle(utterance)
        return {
            "actor_id": utterance.actor_id,
            "shop_id": utterance.shop,
            "events": [event.to_dict() for event in events],
        }

    return router
